"""Catalog models for rentable machinery."""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class MachineQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def primary(self):
        return self.filter(item_type=Machine.ItemType.PRIMARY)

    def equipment_addons(self):
        return self.filter(item_type=Machine.ItemType.ADDON)


class Machine(models.Model):
    """A rentable machine, or an equipment add-on rented alongside one."""

    class ItemType(models.TextChoices):
        PRIMARY = "primary", _("Primary machine")
        ADDON = "addon", _("Equipment add-on")

    class ChargeModel(models.TextChoices):
        PER_BOOKING = "per_booking", _("Flat per booking")
        PER_UNIT = "per_unit", _("Per unit")
        PER_DAY = "per_day", _("Per unit per day")

    code = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    item_type = models.CharField(
        max_length=16,
        choices=ItemType.choices,
        default=ItemType.PRIMARY,
    )
    charge_model = models.CharField(
        max_length=16,
        choices=ChargeModel.choices,
        default=ChargeModel.PER_BOOKING,
        help_text=_("How the daily rate is applied when this row is priced as an add-on."),
    )
    daily_rate = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Pre-VAT euros per rental day."),
    )
    deposit = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    delivery_charge = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    pickup_charge = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    min_days = models.PositiveSmallIntegerField(default=1)
    requires_heavy_transport = models.BooleanField(
        default=False,
        help_text=_("Heavy-truck delivery: enforces the lead time and daily cutoff."),
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MachineQuerySet.as_manager()

    class Meta:
        verbose_name = _("Machine")
        verbose_name_plural = _("Machines")
        ordering = ["name"]
        indexes = [
            models.Index(fields=["item_type", "is_active"], name="machine_type_active_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @property
    def is_primary(self) -> bool:
        return self.item_type == self.ItemType.PRIMARY
