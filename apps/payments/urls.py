"""URL routing for payment webhooks."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import stripe_webhook

urlpatterns = [
    path("stripe/webhook/", stripe_webhook, name="stripe-webhook"),
]
