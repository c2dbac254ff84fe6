"""Display status of a booking, derived from its stored facts."""

from __future__ import annotations

from datetime import date, datetime

from django.utils import timezone

from bookings.models import Booking

CANCELLED = "cancelled"
COMPLETED = "completed"
PENDING_PAYMENT = "pending_payment"
UPCOMING = "upcoming"

DISPLAY_STATUSES = (PENDING_PAYMENT, UPCOMING, COMPLETED, CANCELLED)
CANCELLABLE_STATUSES = {PENDING_PAYMENT, UPCOMING}


def _as_date(value: date | datetime | None) -> date:
    if value is None:
        return timezone.localdate()
    if isinstance(value, datetime):
        return timezone.localdate(value) if timezone.is_aware(value) else value.date()
    return value


def derive_display_status(booking: Booking, today: date | datetime | None = None) -> str:
    """
    Evaluate the rules in order; the first that applies wins.

    Every consumer (serializers, refund gate, payment sessions) goes through here
    instead of inspecting ``status`` and ``payment_status`` directly.
    """
    if booking.status == Booking.CANCELLED:
        return CANCELLED
    if booking.status in {Booking.COMPLETED, Booking.CHECKED_OUT}:
        return COMPLETED
    if _as_date(today) >= booking.check_out_date:
        return COMPLETED
    if booking.payment_status == Booking.PAYMENT_PENDING:
        return PENDING_PAYMENT
    return UPCOMING


def is_terminal(booking: Booking, today: date | datetime | None = None) -> bool:
    return derive_display_status(booking, today) in {CANCELLED, COMPLETED}
