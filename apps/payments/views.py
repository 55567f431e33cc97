"""Stripe webhook endpoint."""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_POST  # type: ignore

from . import gateway
from .reconciler import handle_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive a Stripe event.

    Only a failed signature check is answered with 400, so Stripe retries
    once the secret is fixed. Everything else is acknowledged with 200,
    including events whose handling failed.
    """
    try:
        event = gateway.verify_webhook(request.body, request.headers.get("Stripe-Signature"))
    except gateway.SignatureVerificationError as e:
        logger.warning(f"webhook:bad_signature {e}")
        return JsonResponse({"ok": False, "error": "invalid signature"}, status=400)

    result = handle_event(event)
    return JsonResponse({"ok": True, "received": True, **result.as_dict()}, status=200)
