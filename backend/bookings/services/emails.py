from __future__ import annotations

import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail

from bookings.models import Booking

logger = logging.getLogger(__name__)


def _format_amount(amount: int | None, currency: str) -> str:
    return f"{amount or 0:,} {currency}"


def _recipients(booking: Booking) -> list[str]:
    emails = [booking.guest.email, (booking.guest_details or {}).get("email", "")]
    return sorted({email.strip().lower() for email in emails if email})


def _send(booking: Booking, subject: str, body_lines: list[str]) -> bool:
    recipients = _recipients(booking)
    if not recipients:
        return False
    try:
        send_mail(
            subject,
            "\n".join(body_lines),
            settings.DEFAULT_FROM_EMAIL,
            recipients,
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send '%s' email for booking %s", subject, booking.pk)
        return False
    return True


def _greeting(booking: Booking) -> str:
    details = booking.guest_details or {}
    name = f"{details.get('first_name', '')} {details.get('last_name', '')}".strip()
    return f"Hi {name or booking.guest.get_full_name() or booking.guest.email},"


def send_payment_confirmation_email(booking: Booking) -> bool:
    return _send(
        booking,
        f"Payment received for {booking.homestay.title}",
        [
            _greeting(booking),
            "",
            f"We received {_format_amount(booking.paid_amount, booking.currency)} "
            f"for your stay at {booking.homestay.title}.",
            f"Stay: {booking.check_in_date:%d/%m/%Y} to {booking.check_out_date:%d/%m/%Y}.",
            f"Payment reference: {booking.payment_reference or booking.payment_transaction_id}.",
            "",
            f"View your booking: {settings.FRONTEND_URL.rstrip('/')}/bookings/{booking.pk}",
        ],
    )


def send_cancellation_email(booking: Booking) -> bool:
    snapshot = booking.refund_snapshot or {}
    lines = [
        _greeting(booking),
        "",
        f"Your booking at {booking.homestay.title} for "
        f"{booking.check_in_date:%d/%m/%Y} has been cancelled.",
    ]
    if booking.refund_amount:
        lines.append(
            f"Refund: {_format_amount(booking.refund_amount, booking.currency)} "
            f"({snapshot.get('refund_percentage', 0)}%), expected within {snapshot.get('process_time', '')}."
        )
    else:
        lines.append("No refund is due for this cancellation.")
    return _send(booking, f"Booking cancelled: {booking.homestay.title}", lines)


def send_payment_reminder_email(booking: Booking, session) -> bool:
    """Nudge a guest whose QR code expired before the transfer arrived."""
    return _send(
        booking,
        f"Complete your payment for {booking.homestay.title}",
        [
            _greeting(booking),
            "",
            f"Your booking at {booking.homestay.title} for "
            f"{booking.check_in_date:%d/%m/%Y} is still waiting for payment.",
            f"The payment QR code expired at {session.expires_at:%H:%M %d/%m/%Y}.",
            f"Amount due: {_format_amount(session.amount, session.currency)}. "
            f"Transfer content: {session.reference}.",
            "",
            f"Get a new QR code: {settings.FRONTEND_URL.rstrip('/')}/bookings/{booking.pk}/payment",
        ],
    )
