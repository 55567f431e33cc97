"""Webhook endpoint: signature checks and acknowledgement rules."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse

from apps.bookings.models import Booking, BookingJob
from apps.bookings.tests.factories import future_day, make_booking, make_machine
from apps.payments.models import StripeEvent

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def completed_event(event_id: str, booking_id: int, **session) -> dict:
    obj = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "amount_subtotal": 33930,
        "metadata": {
            "bookingId": str(booking_id),
            "discount_percent": "10",
            "original_subtotal_cents": "37700",
            "discounted_subtotal_cents": "33930",
        },
    }
    obj.update(session)
    return {"id": event_id, "type": "checkout.session.completed", "created": 1767225600, "data": {"object": obj}}


@override_settings(STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET)
class StripeWebhookTests(TestCase):
    def setUp(self) -> None:
        self.url = reverse("stripe-webhook")
        self.machine = make_machine()
        self.booking = make_booking(self.machine, future_day(10), future_day(12))

    def _post(self, event: dict, signature: str | None = None):
        payload = json.dumps(event)
        headers = {}
        if signature is not False:
            headers["HTTP_STRIPE_SIGNATURE"] = signature or sign(payload)
        return self.client.post(self.url, data=payload, content_type="application/json", **headers)

    def test_missing_signature_is_rejected(self) -> None:
        response = self._post(completed_event("evt_1", self.booking.pk), signature=False)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"ok": False, "error": "invalid signature"})
        self.assertFalse(StripeEvent.objects.exists())

    def test_wrong_secret_is_rejected(self) -> None:
        event = completed_event("evt_1", self.booking.pk)

        response = self._post(event, signature=sign(json.dumps(event), secret="whsec_other"))

        self.assertEqual(response.status_code, 400)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_stale_timestamp_is_rejected(self) -> None:
        event = completed_event("evt_1", self.booking.pk)

        response = self._post(event, signature=sign(json.dumps(event), timestamp=int(time.time()) - 3600))

        self.assertEqual(response.status_code, 400)

    def test_non_utf8_body_is_rejected(self) -> None:
        response = self.client.post(
            self.url,
            data=b"\xff\xfe{not json",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"ok": False, "error": "invalid signature"})
        self.assertFalse(StripeEvent.objects.exists())

    def test_paid_checkout_confirms_booking(self) -> None:
        response = self._post(completed_event("evt_1", self.booking.pk))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["outcome"], "promoted")
        self.assertEqual(body["booking_id"], self.booking.pk)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)
        self.assertEqual(str(self.booking.total_cost), "339.30")
        self.assertEqual(self.booking.discounted_subtotal_ex_vat_cents, 33930)
        self.assertEqual(StripeEvent.objects.get(event_id="evt_1").outcome, "promoted")

    def test_redelivery_is_acknowledged_without_side_effects(self) -> None:
        event = completed_event("evt_1", self.booking.pk)
        self._post(event)

        response = self._post(event)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcome"], "duplicate")
        self.assertEqual(BookingJob.objects.filter(booking=self.booking).count(), 3)
        self.assertEqual(StripeEvent.objects.count(), 1)

    def test_unknown_event_type_is_ignored(self) -> None:
        response = self._post({"id": "evt_9", "type": "customer.created", "data": {"object": {}}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcome"], "ignored")

    @patch("apps.payments.reconciler.promote_booking_to_confirmed", side_effect=RuntimeError("db down"))
    def test_handler_failure_still_acknowledged(self, mock_promote) -> None:
        response = self._post(completed_event("evt_1", self.booking.pk))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcome"], "error")
        self.assertEqual(StripeEvent.objects.get(event_id="evt_1").outcome, "error")

    def test_get_is_not_allowed(self) -> None:
        self.assertEqual(self.client.get(self.url).status_code, 405)
