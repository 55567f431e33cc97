"""Booking ledger models.

The ``Booking`` table is the single source of truth for who holds which
machine on which days. The no-overlap rule for active bookings is enforced
by the database (see migration 0002), not only by the services that write
here.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from .dates import rental_days_inclusive

# Name of the storage-level exclusion constraint (PostgreSQL) and the
# message raised by the equivalent SQLite triggers.
OVERLAP_CONSTRAINT_NAME = "booking_no_overlap_for_active"


class BookingQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=Booking.ACTIVE_STATUSES)

    def overlapping(self, start, end):
        """Inclusive overlap: existing.start <= end AND existing.end >= start."""
        return self.filter(start_date__lte=end, end_date__gte=start)

    def for_payment_intent(self, payment_intent_id: str):
        return self.filter(stripe_payment_intent_id=payment_intent_id)


class Booking(models.Model):
    """A machine booked for an inclusive range of calendar days."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending (hold)")
        CONFIRMED = "confirmed", _("Confirmed")
        CANCELLED = "cancelled", _("Cancelled")

    class RefundStatus(models.TextChoices):
        NONE = "none", _("No refund")
        PARTIAL = "partial", _("Partially refunded")
        FULL = "full", _("Fully refunded")

    class DisputeStatus(models.TextChoices):
        NONE = "none", _("No dispute")
        OPEN = "open", _("Open")
        WON = "won", _("Won")
        LOST = "lost", _("Lost")

    ACTIVE_STATUSES = (Status.PENDING, Status.CONFIRMED)

    machine = models.ForeignKey(
        "machines.Machine",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    start_date = models.DateField()
    end_date = models.DateField(help_text=_("Inclusive last rental day."))
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    hold_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Set only while the booking is a PENDING hold."),
    )

    # Add-ons
    delivery_selected = models.BooleanField(default=False)
    pickup_selected = models.BooleanField(default=False)
    insurance_selected = models.BooleanField(default=False)
    operator_selected = models.BooleanField(default=False)
    equipment_addons = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Selected equipment add-ons as [{code, quantity}]."),
    )

    # Customer snapshot
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=40)
    customer_nif = models.CharField(max_length=20, null=True, blank=True)

    # Operational site address
    site_address_line1 = models.CharField(max_length=255, null=True, blank=True)
    site_address_postal_code = models.CharField(max_length=20, null=True, blank=True)
    site_address_city = models.CharField(max_length=120, null=True, blank=True)
    site_address_notes = models.TextField(null=True, blank=True)

    # Billing
    billing_is_business = models.BooleanField(default=False)
    billing_company_name = models.CharField(max_length=200, null=True, blank=True)
    billing_tax_id = models.CharField(max_length=20, null=True, blank=True)
    billing_address_line1 = models.CharField(max_length=255, null=True, blank=True)
    billing_postal_code = models.CharField(max_length=20, null=True, blank=True)
    billing_city = models.CharField(max_length=120, null=True, blank=True)
    billing_country = models.CharField(max_length=2, null=True, blank=True)

    # Money (pre-VAT euros) and discount audit trail
    total_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    original_subtotal_ex_vat_cents = models.PositiveIntegerField(null=True, blank=True)
    discounted_subtotal_ex_vat_cents = models.PositiveIntegerField(null=True, blank=True)
    price_lines = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Priced lines at hold time as [{description, amount_cents, reference, is_primary}]."),
    )

    # Payment linkage
    stripe_payment_intent_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    stripe_charge_id = models.CharField(max_length=255, null=True, blank=True)
    deposit_paid = models.BooleanField(default=False)
    total_paid = models.BooleanField(default=False)

    # Refunds
    refunded_amount_cents = models.PositiveIntegerField(default=0)
    refund_status = models.CharField(
        max_length=16,
        choices=RefundStatus.choices,
        default=RefundStatus.NONE,
    )
    refund_ids = models.JSONField(default=list, blank=True)

    # Disputes
    dispute_id = models.CharField(max_length=255, null=True, blank=True)
    dispute_status = models.CharField(
        max_length=16,
        choices=DisputeStatus.choices,
        default=DisputeStatus.NONE,
    )
    dispute_reason = models.CharField(max_length=120, null=True, blank=True)
    dispute_closed_at = models.DateTimeField(null=True, blank=True)

    # Invoice linkage
    invoice_provider = models.CharField(max_length=32, null=True, blank=True)
    invoice_provider_id = models.CharField(max_length=64, null=True, blank=True)
    invoice_number = models.CharField(max_length=64, null=True, blank=True)
    invoice_pdf_url = models.URLField(max_length=500, null=True, blank=True)
    invoice_atcud = models.CharField(max_length=64, null=True, blank=True)

    # Email idempotency claims (update-where-null)
    confirmation_email_sent_at = models.DateTimeField(null=True, blank=True)
    internal_email_sent_at = models.DateTimeField(null=True, blank=True)
    invoice_email_sent_at = models.DateTimeField(null=True, blank=True)

    google_calendar_event_id = models.CharField(max_length=255, null=True, blank=True)
    ops_notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["machine", "start_date", "end_date"], name="booking_machine_dates_idx"),
            models.Index(fields=["status", "hold_expires_at"], name="booking_status_hold_idx"),
            models.Index(fields=["customer_email"], name="booking_customer_email_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.pk} {self.machine_id} {self.start_date}..{self.end_date} ({self.status})"

    @property
    def rental_days(self) -> int:
        return rental_days_inclusive(self.start_date, self.end_date)

    @property
    def is_internal_placeholder(self) -> bool:
        return (self.customer_email or "").lower().endswith("@internal.local")

    @property
    def has_invoice(self) -> bool:
        return bool(self.invoice_number and self.invoice_pdf_url)

    def hold_is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.status == self.Status.PENDING and self.hold_expires_at and self.hold_expires_at < now)


class BookingJob(models.Model):
    """A durable, retryable side effect of a confirmed booking."""

    class JobType(models.TextChoices):
        ISSUE_INVOICE = "issue_invoice", _("Issue invoice")
        SEND_CUSTOMER_CONFIRMATION = "send_customer_confirmation", _("Send customer confirmation")
        SEND_INTERNAL_CONFIRMATION = "send_internal_confirmation", _("Send internal confirmation")
        SEND_INVOICE_READY = "send_invoice_ready", _("Send invoice-ready email")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PROCESSING = "processing", _("Processing")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="jobs",
    )
    type = models.CharField(max_length=40, choices=JobType.choices)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payload = models.JSONField(default=dict, blank=True)
    result = models.JSONField(null=True, blank=True)
    last_error = models.TextField(blank=True, default="")
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=3)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking job")
        verbose_name_plural = _("Booking jobs")
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["booking", "type"], name="booking_job_unique_type"),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="booking_job_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.type} for booking #{self.booking_id} ({self.status})"


def normalize_nif(value: str | None) -> str | None:
    """Digits of a Portuguese NIF, or None unless exactly nine remain."""
    digits = "".join(ch for ch in (value or "") if ch.isdigit())
    return digits if len(digits) == 9 else None


class CompanyDiscountQuerySet(models.QuerySet):
    def for_nif(self, nif: str | None):
        normalized = normalize_nif(nif)
        if normalized is None:
            return self.none()
        return self.filter(nif=normalized, active=True)


class CompanyDiscount(models.Model):
    """Negotiated percentage off the rental for a business customer."""

    nif = models.CharField(max_length=9, unique=True)
    company_name = models.CharField(max_length=200, blank=True, default="")
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CompanyDiscountQuerySet.as_manager()

    class Meta:
        verbose_name = _("Company discount")
        verbose_name_plural = _("Company discounts")
        ordering = ["nif"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_percentage__gte=0) & models.Q(discount_percentage__lte=100),
                name="company_discount_percentage_range",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.company_name or self.nif}: {self.discount_percentage}%"
