"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking, BookingJob
from .ops import OpsBookingCommand
from .services import HoldRequest


class EquipmentAddonSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1, default=1)


class HoldCreateSerializer(serializers.Serializer):
    """Checkout form payload for placing (or refreshing) a hold."""

    machine_id = serializers.IntegerField(min_value=1)
    start_date = serializers.DateField()
    end_date = serializers.DateField()

    customer_name = serializers.CharField(max_length=200)
    customer_email = serializers.EmailField()
    customer_phone = serializers.CharField(max_length=40)
    customer_nif = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)

    delivery_selected = serializers.BooleanField(default=False)
    pickup_selected = serializers.BooleanField(default=False)
    insurance_selected = serializers.BooleanField(default=False)
    operator_selected = serializers.BooleanField(default=False)
    equipment_addons = EquipmentAddonSerializer(many=True, required=False)

    site_address_line1 = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    site_address_postal_code = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    site_address_city = serializers.CharField(max_length=120, required=False, allow_blank=True, allow_null=True)
    site_address_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    billing_is_business = serializers.BooleanField(default=False)
    billing_company_name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    billing_tax_id = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    billing_address_line1 = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    billing_postal_code = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    billing_city = serializers.CharField(max_length=120, required=False, allow_blank=True, allow_null=True)
    billing_country = serializers.CharField(max_length=2, required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):  # type: ignore
        if attrs["start_date"] > attrs["end_date"]:
            raise serializers.ValidationError("End date must be on or after the start date.")
        if attrs.get("billing_is_business") and not attrs.get("billing_company_name"):
            raise serializers.ValidationError({"billing_company_name": ["Company name is required for business billing."]})
        return attrs

    def to_hold_request(self) -> HoldRequest:
        data = dict(self.validated_data)
        data["equipment_addons"] = [dict(item) for item in data.get("equipment_addons", [])]
        return HoldRequest(**data)


class EnsureConfirmedSerializer(serializers.Serializer):
    session_id = serializers.CharField(required=False, allow_blank=True)
    payment_intent_id = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):  # type: ignore
        if not attrs.get("session_id"):
            raise serializers.ValidationError({"session_id": ["A Checkout Session id is required."]})
        return attrs


class BookingSerializer(serializers.ModelSerializer):
    """Read-only view of a booking for staff and confirmation pages."""

    machine_name = serializers.ReadOnlyField(source="machine.name")
    rental_days = serializers.ReadOnlyField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "machine",
            "machine_name",
            "start_date",
            "end_date",
            "rental_days",
            "status",
            "hold_expires_at",
            "customer_name",
            "customer_email",
            "customer_phone",
            "site_address_line1",
            "site_address_city",
            "site_address_notes",
            "delivery_selected",
            "pickup_selected",
            "insurance_selected",
            "operator_selected",
            "equipment_addons",
            "total_cost",
            "discount_percentage",
            "deposit_paid",
            "refund_status",
            "refunded_amount_cents",
            "dispute_status",
            "invoice_number",
            "invoice_pdf_url",
            "ops_notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OpsBookingCreateSerializer(serializers.Serializer):
    machine_id = serializers.IntegerField(min_value=1)
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, allow_null=True)
    site_address_line1 = serializers.CharField(max_length=255)
    site_address_city = serializers.CharField(max_length=120, required=False, allow_blank=True, allow_null=True)
    site_address_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def to_command(self, manager_name: str) -> OpsBookingCommand:
        return OpsBookingCommand(manager_name=manager_name, **self.validated_data)


class BookingJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingJob
        fields = [
            "id",
            "booking",
            "type",
            "status",
            "attempts",
            "max_attempts",
            "last_error",
            "result",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
