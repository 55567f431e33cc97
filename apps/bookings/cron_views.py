"""Shared-secret cron endpoints for hosts without Celery Beat."""

from __future__ import annotations

import hmac
import logging

from django.conf import settings  # type: ignore
from django.http import HttpRequest, JsonResponse  # type: ignore
from django.utils import timezone  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_http_methods  # type: ignore

from . import jobs, services
from .models import Booking

logger = logging.getLogger(__name__)

MAX_JOBS_LIMIT = 100


def _authorized(request: HttpRequest) -> bool:
    """``x-cron-secret`` header or ``?token=`` must match CRON_SECRET."""
    expected = settings.CRON_SECRET
    if not expected:
        return False
    provided = request.headers.get("x-cron-secret") or request.GET.get("token") or ""
    return hmac.compare_digest(provided.encode(), expected.encode())


def _unauthorized() -> JsonResponse:
    return JsonResponse({"ok": False, "error": "Unauthorized"}, status=401)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def expire_holds(request: HttpRequest) -> JsonResponse:
    if not _authorized(request):
        return _unauthorized()

    cancelled = services.expire_stale_holds()
    remaining = Booking.objects.filter(status=Booking.Status.PENDING).count()
    return JsonResponse(
        {
            "ok": True,
            "cancelled": cancelled,
            "remainingPending": remaining,
            "asOfUtc": timezone.now().isoformat(),
        }
    )


@csrf_exempt
@require_http_methods(["GET", "POST"])
def process_booking_jobs(request: HttpRequest) -> JsonResponse:
    if not _authorized(request):
        return _unauthorized()

    try:
        limit = int(request.GET.get("limit") or settings.BOOKING_JOBS_BATCH_SIZE)
    except ValueError:
        return JsonResponse({"ok": False, "error": "limit must be an integer"}, status=400)
    limit = max(1, min(limit, MAX_JOBS_LIMIT))

    result = jobs.process_pending_jobs(limit=limit)
    return JsonResponse(
        {
            "ok": True,
            "processed": result.processed,
            "failed": result.failed,
            "remainingPending": result.remaining_pending,
            "asOfUtc": timezone.now().isoformat(),
        }
    )
