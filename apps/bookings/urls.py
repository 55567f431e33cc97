"""URL routing for the booking domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from . import cron_views
from .views import BookingJobViewSet, BookingViewSet, HoldViewSet, OpsBookingViewSet

router = SimpleRouter()
router.register(r"holds", HoldViewSet, basename="hold")
router.register(r"", BookingViewSet, basename="booking")

ops_router = SimpleRouter()
ops_router.register(r"bookings", OpsBookingViewSet, basename="ops-booking")
ops_router.register(r"jobs", BookingJobViewSet, basename="ops-job")

urlpatterns = [
    path("", include(router.urls)),
]

ops_urlpatterns = [
    path("", include(ops_router.urls)),
]

cron_urlpatterns = [
    path("expire-holds/", cron_views.expire_holds, name="cron-expire-holds"),
    path("process-booking-jobs/", cron_views.process_booking_jobs, name="cron-process-booking-jobs"),
]
