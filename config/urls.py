"""URL configuration for the machinery rental booking core.

The `urlpatterns` list routes URLs to views. It includes the Django admin,
the DRF routers of each app, plain webhook/cron views and the OpenAPI
schema.
"""
from django.contrib import admin  # type: ignore
from django.urls import include, path  # type: ignore
from drf_spectacular.views import SpectacularAPIView  # type: ignore
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView  # type: ignore

from apps.bookings.urls import cron_urlpatterns, ops_urlpatterns

# API versioning. v1 is our initial version; future versions can be added here.

urlpatterns = [
    path('admin/', admin.site.urls),
    # Staff authentication (JWT)
    path('api/v1/auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('api/v1/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    # Application URLs
    path('api/v1/bookings/', include('apps.bookings.urls')),
    path('api/v1/ops/', include(ops_urlpatterns)),
    path('api/v1/payments/', include('apps.payments.urls')),
    # Scheduled sweeps (shared secret)
    path('api/v1/cron/', include(cron_urlpatterns)),
    # OpenAPI schema
    path('api/v1/schema/', SpectacularAPIView.as_view(), name='schema'),
]
