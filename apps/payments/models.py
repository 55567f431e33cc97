"""Processed payment-provider events."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class StripeEvent(models.Model):
    """
    One row per Stripe event id ever seen.

    The row is written before the payload is interpreted; a second delivery
    of the same id hits the unique constraint and is skipped.
    """

    event_id = models.CharField(max_length=255, unique=True)
    type = models.CharField(max_length=100)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stripe_events",
    )
    outcome = models.CharField(max_length=40, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Stripe event")
        verbose_name_plural = _("Stripe events")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["type", "created_at"], name="stripe_event_type_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.event_id}"
