from django.db.models import Q
from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied

from accounts.permissions import IsPlatformAdmin
from bookings.lifecycle import derive_display_status
from bookings.models import Booking
from bookings.serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    CancelBookingSerializer,
    VerifyPaymentSerializer,
)
from bookings.services.bookings import (
    cancel_booking,
    create_booking,
    process_host_payout,
    transition_payment_completed,
)
from bookings.services.bookings import retry_refund as retry_failed_refund
from bookings.services.refunds import can_cancel
from bookings.services.refunds import refund_preview as build_refund_preview
from core.responses import EnvelopePagination, success
from payments.models import PaymentSession
from payments.serializers import PaymentSessionSerializer
from payments.services import sessions


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = EnvelopePagination
    filterset_fields = ["status", "payment_status", "homestay"]

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.select_related("homestay", "guest", "host").order_by("-created_at", "-id")
        if user.is_platform_admin:
            return queryset
        return queryset.filter(Q(guest=user) | Q(host=user))

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["now"] = timezone.now()
        return context

    def _ensure_guest_or_admin(self, booking: Booking) -> None:
        user = self.request.user
        if booking.guest_id != user.pk and not user.is_platform_admin:
            raise PermissionDenied("Only the guest who made this booking can do that.")

    def retrieve(self, request, *args, **kwargs):
        return success(self.get_serializer(self.get_object()).data)

    def create(self, request, *args, **kwargs):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = create_booking(
            guest=request.user,
            homestay_id=data["homestay_id"],
            check_in_date=data["check_in_date"],
            check_out_date=data["check_out_date"],
            number_of_guests=data["number_of_guests"],
            guest_details=data.get("guest_details"),
            special_requests=data["special_requests"],
        )
        return success(self.get_serializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="refund-preview")
    def refund_preview(self, request, pk=None):
        booking = self.get_object()
        now = timezone.now()
        allowed = can_cancel(booking, now)
        return success(
            {
                "booking_id": booking.pk,
                "display_status": derive_display_status(booking, now),
                "can_cancel": allowed,
                "refund": build_refund_preview(booking, now).as_dict() if allowed else None,
            }
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        booking = self.get_object()
        self._ensure_guest_or_admin(booking)
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = cancel_booking(
            booking.pk,
            actor=request.user,
            reason=serializer.validated_data["reason"],
        )
        return success(self.get_serializer(booking).data)

    def _session_response(self, session: PaymentSession, status_code=status.HTTP_200_OK):
        now = timezone.now()
        context = {"now": now, "status": sessions.get_status(session.booking_id, now)}
        return success(PaymentSessionSerializer(session, context=context).data, status=status_code)

    @action(detail=True, methods=["post"], url_path="payment-session")
    def payment_session(self, request, pk=None):
        booking = self.get_object()
        self._ensure_guest_or_admin(booking)
        session = sessions.create_session(booking.pk)
        return self._session_response(session, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="payment-session/regenerate")
    def regenerate_payment_session(self, request, pk=None):
        booking = self.get_object()
        self._ensure_guest_or_admin(booking)
        session = sessions.regenerate(booking.pk)
        return self._session_response(session)

    @action(detail=True, methods=["get"], url_path="payment-status")
    def payment_status(self, request, pk=None):
        booking = self.get_object()
        now = timezone.now()
        session_status = sessions.get_status(booking.pk, now)
        session = PaymentSession.objects.filter(booking=booking).first()
        return success(
            {
                "booking_id": booking.pk,
                "status": session_status,
                "payment_status": booking.payment_status,
                "paid_at": booking.paid_at,
                "expires_at": session.expires_at if session else None,
            }
        )

    @action(
        detail=True,
        methods=["patch"],
        url_path="payment",
        permission_classes=[permissions.IsAuthenticated, IsPlatformAdmin],
    )
    def verify_payment(self, request, pk=None):
        """Record a transfer an admin confirmed on the bank statement."""
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking, changed = transition_payment_completed(
            self.get_object().pk,
            data["transaction_id"],
            amount=data.get("amount"),
            method=Booking.VERIFICATION_MANUAL,
            verified_by=request.user,
            notes=data["notes"],
        )
        return success(self.get_serializer(booking).data, changed=changed)

    @action(
        detail=True,
        methods=["post"],
        url_path="host-payout",
        permission_classes=[permissions.IsAuthenticated, IsPlatformAdmin],
    )
    def host_payout(self, request, pk=None):
        booking = process_host_payout(self.get_object().pk)
        return success(self.get_serializer(booking).data)

    @action(
        detail=True,
        methods=["post"],
        url_path="refund/retry",
        permission_classes=[permissions.IsAuthenticated, IsPlatformAdmin],
    )
    def retry_refund(self, request, pk=None):
        booking = retry_failed_refund(self.get_object().pk)
        return success(self.get_serializer(booking).data)
