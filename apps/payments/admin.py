"""Admin registration for processed Stripe events."""

from __future__ import annotations

from django.contrib import admin

from .models import StripeEvent


@admin.register(StripeEvent)
class StripeEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "type", "booking", "outcome", "created_at")
    list_filter = ("type", "outcome")
    search_fields = ("event_id", "booking__id")
    readonly_fields = ("event_id", "type", "booking", "outcome", "created_at")
    date_hierarchy = "created_at"

    def has_add_permission(self, request):  # type: ignore
        return False
