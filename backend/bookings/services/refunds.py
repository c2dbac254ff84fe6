from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from bookings.lifecycle import CANCELLABLE_STATUSES, derive_display_status
from bookings.models import Booking
from bookings.pricing import round_amount

POLICY_FULL = "full"
POLICY_PARTIAL = "partial"
POLICY_NONE = "none"

LOCKOUT_HOURS = 24
FULL_REFUND_AFTER_DAYS = 7
PARTIAL_REFUND_FROM_DAYS = 3


@dataclass(frozen=True)
class RefundPreview:
    refund_amount: int
    refund_percentage: int
    policy: str
    service_fee_deducted: int
    process_time: str
    message: str
    days_until_check_in: float

    def as_dict(self) -> dict:
        return asdict(self)


def hours_until(check_in: datetime, now: datetime) -> float:
    return (check_in - now).total_seconds() / 3600


def can_cancel(booking: Booking, now: datetime | None = None) -> bool:
    """Bookings can be cancelled while not terminal and more than 24 hours before check-in."""
    now = now or timezone.now()
    if derive_display_status(booking, now) not in CANCELLABLE_STATUSES:
        return False
    return hours_until(booking.check_in_at, now) > LOCKOUT_HOURS


def compute_refund(
    total_amount: int,
    service_fee: int,
    now: datetime,
    check_in: datetime,
) -> RefundPreview:
    days = hours_until(check_in, now) / 24
    process_time = settings.REFUND_PROCESS_TIME

    if days > FULL_REFUND_AFTER_DAYS:
        amount = max(total_amount - service_fee, 0)
        return RefundPreview(
            refund_amount=amount,
            refund_percentage=100,
            policy=POLICY_FULL,
            service_fee_deducted=total_amount - amount,
            process_time=process_time,
            message="Cancelled more than 7 days before check-in: full refund minus the service fee.",
            days_until_check_in=round(days, 2),
        )

    if days >= PARTIAL_REFUND_FROM_DAYS:
        return RefundPreview(
            refund_amount=round_amount(Decimal(total_amount) * Decimal("0.5")),
            refund_percentage=50,
            policy=POLICY_PARTIAL,
            service_fee_deducted=0,
            process_time=process_time,
            message="Cancelled 3 to 7 days before check-in: 50% refund.",
            days_until_check_in=round(days, 2),
        )

    return RefundPreview(
        refund_amount=0,
        refund_percentage=0,
        policy=POLICY_NONE,
        service_fee_deducted=0,
        process_time="",
        message="Cancelled less than 3 days before check-in: no refund.",
        days_until_check_in=round(days, 2),
    )


def refund_preview(booking: Booking, now: datetime | None = None) -> RefundPreview:
    now = now or timezone.now()
    return compute_refund(booking.total_amount, booking.service_fee, now, booking.check_in_at)
