"""API views for the booking domain."""

from __future__ import annotations

import logging

import stripe
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.payments import gateway

from .exceptions import GENERIC_MESSAGE, BookingValidationError, LeadTimeError, OverlapError, ServiceAreaError
from .filters import BookingFilterSet, BookingJobFilterSet
from .jobs import requeue_job
from .models import Booking, BookingJob, CompanyDiscount, normalize_nif
from .ops import OVERLAP, create_ops_booking
from .serializers import (
    BookingJobSerializer,
    BookingSerializer,
    EnsureConfirmedSerializer,
    HoldCreateSerializer,
    OpsBookingCreateSerializer,
)
from .services import create_or_reuse_hold

logger = logging.getLogger(__name__)


def _error(code: str, message: str, http_status: int, **extra) -> Response:
    return Response({"code": code, "message": message, **extra}, status=http_status)


class HoldViewSet(viewsets.ViewSet):
    """Public checkout endpoint: place or refresh a PENDING hold."""

    permission_classes = [permissions.AllowAny]
    authentication_classes: list = []
    serializer_class = HoldCreateSerializer

    def create(self, request):  # type: ignore
        serializer = HoldCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _error("validation", "Please check the highlighted fields.", status.HTTP_400_BAD_REQUEST, errors=serializer.errors)

        try:
            result = create_or_reuse_hold(serializer.to_hold_request())
        except OverlapError as exc:
            return _error("overlap", str(exc), status.HTTP_409_CONFLICT)
        except LeadTimeError as exc:
            return _error(
                "lead_time",
                str(exc),
                status.HTTP_400_BAD_REQUEST,
                earliest_allowed_day=exc.earliest_allowed_day.isoformat(),
                min_days=exc.min_days,
            )
        except ServiceAreaError as exc:
            return _error("service_area", str(exc), status.HTTP_400_BAD_REQUEST)
        except BookingValidationError as exc:
            return _error("validation", str(exc), status.HTTP_400_BAD_REQUEST)
        except Exception as exc:
            logger.error(f"hold:failed machine={serializer.validated_data.get('machine_id')}: {exc}", exc_info=True)
            return _error("error", GENERIC_MESSAGE, status.HTTP_500_INTERNAL_SERVER_ERROR)

        checkout_url = checkout_session_id = None
        if gateway.checkout_enabled():
            booking = Booking.objects.select_related("machine").get(pk=result.booking_id)
            try:
                session = gateway.create_checkout_session(booking)
            except stripe.StripeError as exc:
                logger.error(f"hold:checkout_failed booking={booking.pk}: {exc}")
                return _error(
                    "payment_unavailable",
                    "Online payment is temporarily unavailable. Please try again.",
                    status.HTTP_502_BAD_GATEWAY,
                    booking_id=booking.pk,
                )
            checkout_session_id = session["id"]
            checkout_url = session.get("url")

        return Response(
            {
                "booking_id": result.booking_id,
                "hold_expires_at": result.hold_expires_at.isoformat(),
                "reused": result.reused,
                "totals": result.totals.as_dict() if result.totals else None,
                "checkout_session_id": checkout_session_id,
                "checkout_url": checkout_url,
            },
            status=status.HTTP_200_OK if result.reused else status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["get"], url_path="discount")
    def discount(self, request):  # type: ignore
        """Negotiated discount for a company NIF, shown before the hold is placed."""
        nif = request.query_params.get("nif")
        if normalize_nif(nif) is None:
            return _error("validation", "Invalid NIF parameter.", status.HTTP_400_BAD_REQUEST)

        discount = CompanyDiscount.objects.for_nif(nif).first()
        if discount is None:
            return Response({"discount_percentage": "0.00", "company_name": None})
        return Response(
            {"discount_percentage": str(discount.discount_percentage), "company_name": discount.company_name or None}
        )


class BookingViewSet(viewsets.GenericViewSet):
    """Customer-facing booking actions keyed by booking id."""

    queryset = Booking.objects.all()
    permission_classes = [permissions.AllowAny]
    authentication_classes: list = []

    @action(detail=True, methods=["post"], url_path="ensure-confirmed")
    def ensure_confirmed(self, request, pk=None):  # type: ignore
        from apps.payments.reconciler import ensure_confirmed

        serializer = EnsureConfirmedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking_id = int(pk)
        except (TypeError, ValueError):
            return Response({"ok": False, "status": "not_found"}, status=status.HTTP_404_NOT_FOUND)

        outcome = ensure_confirmed(booking_id, serializer.validated_data["session_id"])
        if outcome == "not_found":
            return Response({"ok": False, "status": outcome}, status=status.HTTP_404_NOT_FOUND)

        booking_status = Booking.objects.filter(pk=booking_id).values_list("status", flat=True).first()
        ok = booking_status == Booking.Status.CONFIRMED
        return Response({"ok": ok, "status": booking_status, "outcome": outcome})


# ============================================================================
# OPS (staff only)
# ============================================================================

class OpsBookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Staff list of bookings, and zero-cost CONFIRMED bookings for internal use."""

    queryset = Booking.objects.select_related("machine").all()
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAdminUser]
    filterset_class = BookingFilterSet

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = OpsBookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = request.user
        manager_name = user.get_full_name() or user.get_username()
        result = create_ops_booking(serializer.to_command(manager_name))
        if result.ok:
            return Response(result.as_dict(), status=status.HTTP_201_CREATED)
        if result.reason == OVERLAP:
            return Response(result.as_dict(), status=status.HTTP_409_CONFLICT)
        return Response(result.as_dict(), status=status.HTTP_400_BAD_REQUEST)


class BookingJobViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = BookingJob.objects.select_related("booking").all()
    serializer_class = BookingJobSerializer
    permission_classes = [permissions.IsAdminUser]
    filterset_class = BookingJobFilterSet

    @action(detail=True, methods=["post"])
    def requeue(self, request, pk=None):  # type: ignore
        job: BookingJob = self.get_object()  # type: ignore
        if job.status != BookingJob.Status.FAILED:
            return Response(
                {"detail": "Only failed jobs can be requeued."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        requeue_job(job)
        return Response(BookingJobSerializer(job).data)
