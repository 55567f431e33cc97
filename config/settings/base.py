"""Base settings for all environments.

This configuration file defines the common settings used in both development
and production environments. It follows Django's standard configuration
structure and integrates third-party packages such as Django Rest Framework,
Celery and structlog. Additional environment-specific settings can be
overridden in `dev.py` or `prod.py`.
"""

import os
from datetime import timedelta
from pathlib import Path

import structlog
from django.core.exceptions import ImproperlyConfigured  # type: ignore
from dotenv import load_dotenv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / '.env')


def get_env(var_name: str, default=None, required: bool = False):
    value = os.environ.get(var_name, default)
    if required and value in (None, ''):
        raise ImproperlyConfigured(f'Missing required environment variable: {var_name}')
    return value


def env_flag(var_name: str, default: str = 'false') -> bool:
    return str(get_env(var_name, default)).strip().lower() in ('1', 'true', 'yes', 'on')


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = get_env('DJANGO_SECRET_KEY', 'replace-me-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = False

ALLOWED_HOSTS: list[str] = get_env('DJANGO_ALLOWED_HOSTS', '*').split(',')

# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # Third-party apps
    'rest_framework',
    'django_filters',
    'corsheaders',
    'drf_spectacular',
    'django_celery_beat',
    # Domain apps
    'apps.machines',
    'apps.bookings',
    'apps.payments',
    'apps.invoicing',
    'apps.notifications',
    'apps.geofence',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
# https://docs.djangoproject.com/en/5.0/ref/settings/#databases
# PostgreSQL is expected in production: the booking exclusion constraint
# uses btree_gist there and SQLite triggers elsewhere.

DATABASES = {
    'default': {
        'ENGINE': get_env('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': get_env('DB_NAME', BASE_DIR / 'db.sqlite3'),
        'USER': get_env('DB_USER', ''),
        'PASSWORD': get_env('DB_PASSWORD', ''),
        'HOST': get_env('DB_HOST', ''),
        'PORT': get_env('DB_PORT', ''),
    }
}

# Password validation
# https://docs.djangoproject.com/en/5.0/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Internationalization
# https://docs.djangoproject.com/en/5.0/topics/i18n/

LANGUAGE_CODE = 'en'

# Storage is UTC; every user-facing day calculation uses BUSINESS_TIME_ZONE.
TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/5.0/howto/static-files/

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# WhiteNoise configuration for static files
STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'whitenoise.storage.CompressedManifestStaticFilesStorage',
    },
}

# Email defaults
DEFAULT_FROM_EMAIL = get_env('DEFAULT_FROM_EMAIL', 'bookings@machinery-rental.local')
EMAIL_ADMIN_TO: list[str] = [
    address.strip()
    for address in get_env('EMAIL_ADMIN_TO', 'ops@machinery-rental.local').split(',')
    if address.strip()
]

# Django Rest Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticatedOrReadOnly',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 50,
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=60),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
}

# Celery configuration (Broker and Result backend handled in environment)
CELERY_BROKER_URL = get_env('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = get_env('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'
CELERY_TASK_ALWAYS_EAGER = env_flag('CELERY_TASK_ALWAYS_EAGER')

# CORS settings
CORS_ALLOWED_ORIGINS = get_env(
    'CORS_ALLOWED_ORIGINS',
    'http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000'
).split(',')
CORS_ALLOW_CREDENTIALS = True

# CSRF settings
CSRF_TRUSTED_ORIGINS = get_env(
    'CSRF_TRUSTED_ORIGINS',
    'http://localhost:8000,http://127.0.0.1:8000'
).split(',')

# DRF Spectacular (API docs)
SPECTACULAR_SETTINGS = {
    'TITLE': 'Machinery Rental Booking API',
    'DESCRIPTION': 'Holds, payment reconciliation and ops bookings',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}

# ============================================================================
# BOOKING DOMAIN
# ============================================================================

BUSINESS_TIME_ZONE = 'Europe/Lisbon'

# Rolling hold window for PENDING bookings and the sweep grace period
BOOKING_HOLD_MINUTES = int(get_env('BOOKING_HOLD_MINUTES', 30))
BOOKING_HOLD_GRACE_MINUTES = int(get_env('BOOKING_HOLD_GRACE_MINUTES', 2))

# Heavy-transport lead time, evaluated in Lisbon time
LEAD_DAYS = int(get_env('LEAD_DAYS', 2))
LEAD_CUTOFF_HOUR = int(get_env('LEAD_CUTOFF_HOUR', 15))

# Pricing (euros, pre-VAT)
VAT_PERCENT = int(get_env('VAT_PERCENT', 23))
INSURANCE_CHARGE = get_env('INSURANCE_CHARGE', '50')
OPERATOR_CHARGE = get_env('OPERATOR_CHARGE', '350')

# Side-effect job queue
BOOKING_JOBS_BATCH_SIZE = int(get_env('BOOKING_JOBS_BATCH_SIZE', 10))
BOOKING_JOB_MAX_ATTEMPTS = int(get_env('BOOKING_JOB_MAX_ATTEMPTS', 3))
BOOKING_JOB_STALE_MINUTES = int(get_env('BOOKING_JOB_STALE_MINUTES', 10))

# Shared secret for the cron sweep endpoints
CRON_SECRET = get_env('CRON_SECRET', '')

# Stripe
STRIPE_SECRET_KEY = get_env('STRIPE_SECRET_KEY', '')
STRIPE_WEBHOOK_SECRET = get_env('STRIPE_WEBHOOK_SECRET', '')
STRIPE_WEBHOOK_TOLERANCE = int(get_env('STRIPE_WEBHOOK_TOLERANCE', 300))
STRIPE_TAX_RATE_ID = get_env('STRIPE_TAX_RATE_ID', '')
CHECKOUT_CURRENCY = get_env('CHECKOUT_CURRENCY', 'eur')
PUBLIC_APP_URL = get_env('PUBLIC_APP_URL', 'http://localhost:3000').rstrip('/')

# Invoicing (Vendus)
INVOICING_ENABLED = env_flag('INVOICING_ENABLED')
VENDUS_API_KEY = get_env('VENDUS_API_KEY', '')
VENDUS_BASE_URL = get_env('VENDUS_BASE_URL', 'https://www.vendus.pt/ws').rstrip('/')
VENDUS_MODE = get_env('VENDUS_MODE', 'tests')
VENDUS_DOC_TYPE = get_env('VENDUS_DOC_TYPE', 'FR')
VENDUS_REGISTER_ID = get_env('VENDUS_REGISTER_ID', '')
VENDUS_TIMEOUT = float(get_env('VENDUS_TIMEOUT', 15))

# Geofence (Mapbox geocoding)
ENABLE_GEOFENCE = env_flag('ENABLE_GEOFENCE')
MAPBOX_ACCESS_TOKEN = get_env('MAPBOX_ACCESS_TOKEN', '')

# Google Calendar (service account)
GOOGLE_CALENDAR_ID = get_env('GOOGLE_CALENDAR_ID', '')
GOOGLE_SERVICE_ACCOUNT_EMAIL = get_env('GOOGLE_SERVICE_ACCOUNT_EMAIL', '')
GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY = get_env('GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY', '').replace('\\n', '\n')

# ============================================================================
# LOGGING (structlog, JSON to stdout)
# ============================================================================

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.processors.JSONRenderer(),
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": "INFO",
        }
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apps": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "shared": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "apps.payments": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}
