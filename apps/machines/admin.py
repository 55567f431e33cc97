"""Admin registration for the machine catalog."""

from __future__ import annotations

from django.contrib import admin

from .models import Machine


@admin.register(Machine)
class MachineAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "code",
        "item_type",
        "charge_model",
        "daily_rate",
        "min_days",
        "requires_heavy_transport",
        "is_active",
    )
    list_filter = ("item_type", "charge_model", "requires_heavy_transport", "is_active")
    search_fields = ("name", "code")
    prepopulated_fields = {"code": ("name",)}
