from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict

from django.db import transaction
from django.db.models import Case, F, Value, When
from django.utils import timezone

from bookings.lifecycle import CANCELLED, COMPLETED, derive_display_status
from bookings.models import Booking
from bookings.pricing import calculate_pricing
from bookings.services.emails import send_cancellation_email, send_payment_confirmation_email
from bookings.services.payouts import disburse_guest_refund, send_host_payout
from bookings.services.refunds import LOCKOUT_HOURS, can_cancel, compute_refund, hours_until
from core.exceptions import (
    ExternalDependencyError,
    NotFoundError,
    PolicyViolationError,
    StateConflictError,
    ValidationError,
)
from homestays.models import Homestay

logger = logging.getLogger(__name__)

GUEST_DETAIL_FIELDS = ("first_name", "last_name", "email", "phone")


def _normalize_guest_details(data: Dict[str, Any] | None) -> Dict[str, str]:
    data = data or {}
    details = {field: str(data.get(field) or "").strip() for field in GUEST_DETAIL_FIELDS}
    details["email"] = details["email"].lower()
    return details


def get_booking(booking_id, *, for_update: bool = False) -> Booking:
    queryset = Booking.objects.select_related("homestay", "guest", "host")
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Booking not found.", details={"booking_id": booking_id})


def _dates_overlap(homestay: Homestay, check_in: date, check_out: date) -> bool:
    return (
        Booking.objects.filter(
            homestay=homestay,
            check_in_date__lt=check_out,
            check_out_date__gt=check_in,
        )
        .exclude(status=Booking.CANCELLED)
        .exists()
    )


def create_booking(
    *,
    guest,
    homestay_id,
    check_in_date: date,
    check_out_date: date,
    number_of_guests: int = 1,
    guest_details: Dict[str, Any] | None = None,
    special_requests: str = "",
    today: date | None = None,
) -> Booking:
    """Price a stay and store it as a booking awaiting payment."""

    today = today or timezone.localdate()
    try:
        homestay = Homestay.objects.select_related("host").get(pk=homestay_id)
    except (Homestay.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Homestay not found.", details={"homestay_id": homestay_id})

    errors: Dict[str, str] = {}
    if not homestay.is_bookable:
        errors["homestay_id"] = "This homestay is not available for booking."
    if check_out_date <= check_in_date:
        errors["check_out_date"] = "Check-out must be after check-in."
    if check_in_date < today:
        errors["check_in_date"] = "Check-in cannot be in the past."
    if number_of_guests < 1:
        errors["number_of_guests"] = "At least one guest is required."
    elif number_of_guests > homestay.max_guests:
        errors["number_of_guests"] = f"This homestay accepts at most {homestay.max_guests} guests."
    if errors:
        raise ValidationError("Invalid booking request.", details=errors)

    nights = (check_out_date - check_in_date).days
    pricing = calculate_pricing(
        base_price=homestay.base_price,
        number_of_nights=nights,
        cleaning_fee=homestay.cleaning_fee,
        service_fee=homestay.service_fee,
    )

    with transaction.atomic():
        Homestay.objects.select_for_update().get(pk=homestay.pk)
        if _dates_overlap(homestay, check_in_date, check_out_date):
            raise ValidationError(
                "Selected dates are not available.",
                details={"check_in_date": "The homestay is already booked for these dates."},
            )
        booking = Booking.objects.create(
            guest=guest,
            homestay=homestay,
            host=homestay.host,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            number_of_nights=nights,
            number_of_guests=number_of_guests,
            guest_details=_normalize_guest_details(guest_details),
            special_requests=special_requests or "",
            base_price=pricing.base_price,
            cleaning_fee=pricing.cleaning_fee,
            service_fee=pricing.service_fee,
            total_amount=pricing.total_amount,
            host_amount=pricing.host_amount,
            platform_commission=pricing.platform_commission,
            currency=homestay.currency,
            status=Booking.PENDING,
            payment_status=Booking.PAYMENT_PENDING,
        )

    logger.info(
        "Booking %s created for homestay %s: total=%s host=%s commission=%s",
        booking.pk,
        homestay.pk,
        booking.total_amount,
        booking.host_amount,
        booking.platform_commission,
    )
    return booking


def transition_payment_completed(
    booking_id,
    transaction_ref: str,
    *,
    amount: int | None = None,
    method: str = Booking.VERIFICATION_MANUAL,
    verified_by=None,
    notes: str = "",
    paid_at: datetime | None = None,
) -> tuple[Booking, bool]:
    """
    Mark a booking as paid.

    Returns ``(booking, changed)``. Calling it again for a booking that is already
    paid returns ``changed=False`` instead of failing.
    """

    now = timezone.now()
    with transaction.atomic():
        booking = get_booking(booking_id, for_update=True)
        if booking.payment_status == Booking.PAYMENT_COMPLETED:
            logger.info(
                "Payment for booking %s already completed (existing=%s, incoming=%s)",
                booking.pk,
                booking.payment_transaction_id,
                transaction_ref,
            )
            return booking, False
        if booking.status == Booking.CANCELLED:
            raise StateConflictError(
                "Cannot record payment for a cancelled booking.",
                details={"booking_id": booking.pk},
            )

        payable = [Booking.PAYMENT_PENDING, Booking.PAYMENT_FAILED]
        updated = (
            Booking.objects.filter(pk=booking.pk, payment_status__in=payable)
            .exclude(status=Booking.CANCELLED)
            .update(
                payment_status=Booking.PAYMENT_COMPLETED,
                payment_transaction_id=transaction_ref,
                paid_amount=booking.total_amount if amount is None else amount,
                paid_at=paid_at or now,
                verification_method=method,
                verified_by=verified_by,
                verified_at=now,
                verification_notes=notes,
                status=Case(
                    When(status=Booking.PENDING, then=Value(Booking.CONFIRMED)),
                    default=F("status"),
                ),
                host_payout_amount=F("host_amount"),
                updated_at=now,
            )
        )
        booking.refresh_from_db()
        if not updated:
            if booking.payment_status == Booking.PAYMENT_COMPLETED:
                return booking, False
            raise StateConflictError(
                f"Cannot record payment for booking with payment status {booking.payment_status}.",
                details={"booking_id": booking.pk},
            )

        transaction.on_commit(lambda: send_payment_confirmation_email(booking))

    logger.info(
        "Payment completed for booking %s via %s (transaction=%s, amount=%s)",
        booking.pk,
        method,
        transaction_ref,
        booking.paid_amount,
    )
    return booking, True


def _refund_payment_status(booking: Booking, refund_amount: int) -> str:
    if not booking.is_paid or refund_amount <= 0:
        return booking.payment_status
    if refund_amount >= (booking.paid_amount or booking.total_amount):
        return Booking.PAYMENT_REFUNDED
    return Booking.PAYMENT_PARTIALLY_REFUNDED


def cancel_booking(booking_id, *, actor=None, reason: str = "", now: datetime | None = None) -> Booking:
    """
    Cancel a booking and record the refund owed under the cancellation policy.

    The refund is always recomputed here; previews shown to the guest beforehand
    are informational only. The cancellation is committed before any money moves,
    so a failing refund leaves ``refund_status=failed`` on a cancelled booking.
    """

    now = now or timezone.now()
    with transaction.atomic():
        booking = get_booking(booking_id, for_update=True)
        display_status = derive_display_status(booking, now)
        if display_status in {CANCELLED, COMPLETED}:
            raise StateConflictError(
                f"Booking is already {display_status}.",
                details={"booking_id": booking.pk, "status": display_status},
            )
        if not can_cancel(booking, now):
            raise PolicyViolationError(
                f"Bookings cannot be cancelled within {LOCKOUT_HOURS} hours of check-in.",
                details={
                    "booking_id": booking.pk,
                    "hours_until_check_in": round(hours_until(booking.check_in_at, now), 2),
                },
            )

        preview = compute_refund(booking.total_amount, booking.service_fee, now, booking.check_in_at)
        refund_due = preview.refund_amount if booking.is_paid else 0

        booking.payment_status = _refund_payment_status(booking, refund_due)
        booking.status = Booking.CANCELLED
        booking.cancelled_by = actor
        booking.cancelled_at = now
        booking.cancellation_reason = reason or ""
        booking.refund_snapshot = preview.as_dict()
        booking.refund_amount = refund_due
        booking.refund_status = Booking.PAYOUT_PENDING if refund_due else Booking.REFUND_NOT_REQUIRED
        booking.save(
            update_fields=[
                "payment_status",
                "status",
                "cancelled_by",
                "cancelled_at",
                "cancellation_reason",
                "refund_snapshot",
                "refund_amount",
                "refund_status",
                "updated_at",
            ]
        )

    logger.info(
        "Booking %s cancelled: policy=%s refund=%s",
        booking.pk,
        preview.policy,
        refund_due,
    )

    if refund_due:
        _disburse_refund(booking)
    send_cancellation_email(booking)
    return booking


def _disburse_refund(booking: Booking) -> Booking:
    booking.refund_status = Booking.PAYOUT_PROCESSING
    booking.save(update_fields=["refund_status", "updated_at"])
    try:
        payout = disburse_guest_refund(booking, booking.refund_amount)
    except ExternalDependencyError:
        logger.exception("Refund for booking %s failed; cancellation stands", booking.pk)
        booking.refund_status = Booking.PAYOUT_FAILED
        booking.save(update_fields=["refund_status", "updated_at"])
        return booking
    except Exception:
        logger.exception("Unexpected error sending refund for booking %s", booking.pk)
        booking.refund_status = Booking.PAYOUT_FAILED
        booking.save(update_fields=["refund_status", "updated_at"])
        raise

    booking.refund_status = Booking.PAYOUT_COMPLETED
    booking.refund_reference = payout.id
    booking.save(update_fields=["refund_status", "refund_reference", "updated_at"])
    return booking


def retry_refund(booking_id) -> Booking:
    """Re-attempt a failed refund for a cancelled booking."""

    with transaction.atomic():
        booking = get_booking(booking_id, for_update=True)
        if booking.refund_status == Booking.PAYOUT_COMPLETED:
            return booking
        if booking.status != Booking.CANCELLED or booking.refund_status != Booking.PAYOUT_FAILED:
            raise StateConflictError(
                "Only failed refunds of cancelled bookings can be retried.",
                details={"booking_id": booking.pk, "refund_status": booking.refund_status},
            )
    return _disburse_refund(booking)


def process_host_payout(booking_id, *, now: datetime | None = None) -> Booking:
    """
    Pay the host share of a paid booking through the payout collaborator.

    Only stays that reached check-out are paid out, so a cancellation refund can
    never follow a host payout for the same booking.
    """

    now = now or timezone.now()
    with transaction.atomic():
        booking = get_booking(booking_id, for_update=True)
        if booking.host_payout_status == Booking.PAYOUT_COMPLETED:
            return booking
        if not booking.is_paid:
            raise StateConflictError(
                "Payment must be completed before processing host payout.",
                details={"booking_id": booking.pk, "payment_status": booking.payment_status},
            )
        display_status = derive_display_status(booking, now)
        if display_status == CANCELLED:
            raise StateConflictError("Cancelled bookings are not paid out.", details={"booking_id": booking.pk})
        if display_status != COMPLETED:
            raise StateConflictError(
                "Host payout is only available after check-out.",
                details={"booking_id": booking.pk, "check_out_date": booking.check_out_date.isoformat()},
            )
        if booking.host_payout_status == Booking.PAYOUT_PROCESSING:
            raise StateConflictError("Host payout is already in progress.", details={"booking_id": booking.pk})

        booking.host_payout_status = Booking.PAYOUT_PROCESSING
        booking.host_payout_amount = booking.host_amount
        booking.save(update_fields=["host_payout_status", "host_payout_amount", "updated_at"])

    try:
        transfer = send_host_payout(booking)
    except ExternalDependencyError:
        booking.host_payout_status = Booking.PAYOUT_FAILED
        booking.save(update_fields=["host_payout_status", "updated_at"])
        raise

    booking.host_payout_status = Booking.PAYOUT_COMPLETED
    booking.host_payout_reference = transfer.id
    booking.host_payout_paid_at = timezone.now()
    booking.save(
        update_fields=["host_payout_status", "host_payout_reference", "host_payout_paid_at", "updated_at"]
    )
    logger.info("Host payout %s completed for booking %s", transfer.id, booking.pk)
    return booking
