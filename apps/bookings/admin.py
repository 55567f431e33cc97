"""Admin registration for bookings and their side-effect jobs."""

from __future__ import annotations

from django.contrib import admin, messages

from .jobs import requeue_job
from .models import Booking, BookingJob, CompanyDiscount


class BookingJobInline(admin.TabularInline):
    model = BookingJob
    extra = 0
    can_delete = False
    fields = ("type", "status", "attempts", "max_attempts", "last_error", "processed_at")
    readonly_fields = fields


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "machine",
        "customer_name",
        "status",
        "start_date",
        "end_date",
        "total_cost",
        "deposit_paid",
        "refund_status",
        "dispute_status",
        "invoice_number",
        "created_at",
    )
    list_filter = ("status", "deposit_paid", "refund_status", "dispute_status", "machine")
    search_fields = ("=id", "customer_name", "customer_email", "stripe_payment_intent_id", "invoice_number")
    date_hierarchy = "start_date"
    inlines = [BookingJobInline]
    readonly_fields = (
        "hold_expires_at",
        "stripe_payment_intent_id",
        "stripe_charge_id",
        "original_subtotal_ex_vat_cents",
        "discounted_subtotal_ex_vat_cents",
        "price_lines",
        "refunded_amount_cents",
        "refund_ids",
        "dispute_id",
        "dispute_closed_at",
        "invoice_provider",
        "invoice_provider_id",
        "invoice_number",
        "invoice_pdf_url",
        "invoice_atcud",
        "confirmation_email_sent_at",
        "internal_email_sent_at",
        "invoice_email_sent_at",
        "google_calendar_event_id",
        "created_at",
        "updated_at",
    )


@admin.register(BookingJob)
class BookingJobAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "type", "status", "attempts", "max_attempts", "processed_at", "created_at")
    list_filter = ("status", "type")
    search_fields = ("=booking__id", "last_error")
    readonly_fields = ("result", "last_error", "processed_at", "created_at", "updated_at")
    actions = ["requeue_failed_jobs"]

    @admin.action(description="Requeue selected failed jobs")
    def requeue_failed_jobs(self, request, queryset):  # type: ignore
        count = 0
        for job in queryset.filter(status=BookingJob.Status.FAILED):
            requeue_job(job)
            count += 1
        self.message_user(request, f"{count} job(s) requeued.", messages.SUCCESS)


@admin.register(CompanyDiscount)
class CompanyDiscountAdmin(admin.ModelAdmin):
    list_display = ("nif", "company_name", "discount_percentage", "active", "updated_at")
    list_filter = ("active",)
    search_fields = ("nif", "company_name")
