"""FilterSet definitions for the staff booking and job listings."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Booking, BookingJob


class BookingFilterSet(django_filters.FilterSet):
    """Staff filters; ``date_from``/``date_to`` match bookings that touch the range."""

    status = django_filters.MultipleChoiceFilter(choices=Booking.Status.choices)
    machine = django_filters.NumberFilter(field_name="machine_id", lookup_expr="exact")
    customer_email = django_filters.CharFilter(field_name="customer_email", lookup_expr="iexact")
    date_from = django_filters.DateFilter(field_name="end_date", lookup_expr="gte")
    date_to = django_filters.DateFilter(field_name="start_date", lookup_expr="lte")
    deposit_paid = django_filters.BooleanFilter()

    class Meta:
        model = Booking
        fields = [
            "status",
            "machine",
            "customer_email",
            "deposit_paid",
        ]


class BookingJobFilterSet(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=BookingJob.Status.choices)
    type = django_filters.ChoiceFilter(choices=BookingJob.JobType.choices)
    booking = django_filters.NumberFilter(field_name="booking_id", lookup_expr="exact")

    class Meta:
        model = BookingJob
        fields = ["status", "type", "booking"]
