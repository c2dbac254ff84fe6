from __future__ import annotations

import hashlib
import hmac
import logging
import re
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from bookings.lifecycle import PENDING_PAYMENT, derive_display_status
from bookings.models import Booking
from bookings.services.bookings import get_booking
from core.exceptions import NotFoundError, StateConflictError
from payments.models import PaymentSession
from payments.services.qr import build_qr_payload, receiving_account

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "BOOKING"
REFERENCE_ID_DIGITS = 8
CHECKSUM_LENGTH = 4
REFERENCE_PATTERN = re.compile(
    rf"{REFERENCE_PREFIX}(\d{{{REFERENCE_ID_DIGITS}}})([0-9A-F]{{{CHECKSUM_LENGTH}}})"
)

STATUS_PENDING = "pending"
STATUS_EXPIRED = "expired"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


def _checksum(booking_id: int) -> str:
    secret = str(settings.PAYMENT_REFERENCE_SECRET).encode()
    digest = hmac.new(secret, str(booking_id).encode(), hashlib.sha256).hexdigest()
    return digest[:CHECKSUM_LENGTH].upper()


def build_reference(booking_id: int) -> str:
    """Deterministic transfer reference, e.g. ``BOOKING00000042A1F3``."""
    return f"{REFERENCE_PREFIX}{int(booking_id):0{REFERENCE_ID_DIGITS}d}{_checksum(int(booking_id))}"


def parse_reference(content: str) -> Optional[str]:
    """Find a well-formed reference in free transfer text. Banks often drop spaces and case."""
    if not content:
        return None
    match = REFERENCE_PATTERN.search(re.sub(r"\s+", "", content).upper())
    return match.group(0) if match else None


def verify_reference(reference: str) -> Optional[int]:
    """Return the booking id a reference belongs to, or None if its checksum is wrong."""
    match = REFERENCE_PATTERN.fullmatch((reference or "").upper())
    if not match:
        return None
    booking_id = int(match.group(1))
    if not hmac.compare_digest(match.group(2), _checksum(booking_id)):
        return None
    return booking_id


def _require_pending_payment(booking: Booking, now: datetime) -> None:
    display_status = derive_display_status(booking, now)
    if display_status != PENDING_PAYMENT:
        raise StateConflictError(
            "Payment sessions are only available for bookings awaiting payment.",
            details={"booking_id": booking.pk, "status": display_status},
        )


def _issue(booking: Booking, now: datetime, session: PaymentSession | None = None) -> PaymentSession:
    account = receiving_account()
    reference = session.reference if session else build_reference(booking.pk)
    payload = build_qr_payload(amount=booking.total_amount, reference=reference, account=account)
    expires_at = now + settings.PAYMENT_SESSION_TTL

    if session is None:
        session = PaymentSession.objects.create(
            booking=booking,
            reference=reference,
            qr_payload=payload,
            bank_bin=account.bank_bin,
            bank_name=account.bank_name,
            account_number=account.account_number,
            account_name=account.account_name,
            amount=booking.total_amount,
            currency=booking.currency,
            issued_at=now,
            expires_at=expires_at,
        )
        logger.info("Payment session %s issued for booking %s", reference, booking.pk)
    else:
        session.qr_payload = payload
        session.bank_bin = account.bank_bin
        session.bank_name = account.bank_name
        session.account_number = account.account_number
        session.account_name = account.account_name
        session.amount = booking.total_amount
        session.issued_at = now
        session.expires_at = expires_at
        session.regeneration_count += 1
        session.reminder_sent_at = None
        session.save()
        logger.info(
            "Payment session %s regenerated for booking %s (count=%s)",
            reference,
            booking.pk,
            session.regeneration_count,
        )

    if booking.payment_reference != reference:
        booking.payment_reference = reference
        booking.save(update_fields=["payment_reference", "updated_at"])
    return session


def _active_or_issue(booking_id, now: datetime) -> PaymentSession:
    with transaction.atomic():
        booking = get_booking(booking_id, for_update=True)
        _require_pending_payment(booking, now)
        session = PaymentSession.objects.filter(booking=booking).first()
        if session is not None and not session.is_expired(now):
            return session
        return _issue(booking, now, session)


def create_session(booking_id, now: datetime | None = None) -> PaymentSession:
    """Issue the QR session for a booking, or return the one still active."""
    return _active_or_issue(booking_id, now or timezone.now())


def regenerate(booking_id, now: datetime | None = None) -> PaymentSession:
    """
    Re-issue an expired session with a fresh expiry and the same reference.

    While the current session is still active it is returned unchanged, so
    double-clicks do not extend the window.
    """

    return _active_or_issue(booking_id, now or timezone.now())


def get_session(booking_id) -> PaymentSession:
    booking = get_booking(booking_id)
    try:
        return booking.payment_session
    except PaymentSession.DoesNotExist:
        raise NotFoundError("No payment session for this booking.", details={"booking_id": booking.pk})


def get_status(booking_id, now: datetime | None = None) -> str:
    """Lazily evaluated session status. Has no side effects."""

    now = now or timezone.now()
    booking = get_booking(booking_id)
    if booking.payment_status == Booking.PAYMENT_COMPLETED:
        return STATUS_COMPLETED
    if booking.status == Booking.CANCELLED:
        return STATUS_CANCELLED
    session = get_session(booking.pk)
    if session.is_expired(now):
        return STATUS_EXPIRED
    return STATUS_PENDING
