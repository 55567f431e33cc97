"""Development settings for the machinery rental project.

This module extends the base settings with development specific
configuration, such as enabling debug, allowing all hosts, running Celery
tasks inline and using the console email backend. Do not use these settings
in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Use console email backend during development
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# No broker needed locally: queued tasks run in-process
CELERY_TASK_ALWAYS_EAGER = env_flag('CELERY_TASK_ALWAYS_EAGER', 'true')  # noqa: F405
CELERY_TASK_EAGER_PROPAGATES = False

# Plain static storage so runserver and tests do not need collectstatic
STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}
