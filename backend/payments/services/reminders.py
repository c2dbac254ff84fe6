from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List

from django.utils import timezone

from bookings.lifecycle import PENDING_PAYMENT, derive_display_status
from bookings.models import Booking
from bookings.services.emails import send_payment_reminder_email
from payments.models import PaymentSession

logger = logging.getLogger(__name__)


def due_reminders(now: datetime | None = None) -> List[PaymentSession]:
    """Expired sessions of bookings still awaiting payment that have not been reminded yet."""

    now = now or timezone.now()
    sessions = (
        PaymentSession.objects.select_related("booking", "booking__homestay", "booking__guest")
        .filter(
            expires_at__lt=now,
            reminder_sent_at__isnull=True,
            booking__payment_status=Booking.PAYMENT_PENDING,
        )
        .exclude(booking__status__in=Booking.TERMINAL_STATUSES)
        .order_by("expires_at", "id")
    )
    return [session for session in sessions if derive_display_status(session.booking, now) == PENDING_PAYMENT]


def send_payment_reminders(now: datetime | None = None) -> Dict[str, int]:
    """
    E-mail each guest whose QR session expired while the booking was unpaid.

    Every session is reminded at most once; regenerating the session makes it
    eligible again after the new expiry. Nothing here is scheduled: callers are
    the admin endpoint and the ``send_payment_reminders`` management command.
    """

    now = now or timezone.now()
    due = due_reminders(now)
    sent = failed = 0
    for session in due:
        claimed = PaymentSession.objects.filter(pk=session.pk, reminder_sent_at__isnull=True).update(
            reminder_sent_at=now,
            updated_at=now,
        )
        if not claimed:
            continue
        if send_payment_reminder_email(session.booking, session):
            sent += 1
            logger.info("Payment reminder sent for booking %s (%s)", session.booking_id, session.reference)
        else:
            failed += 1
            PaymentSession.objects.filter(pk=session.pk).update(reminder_sent_at=None, updated_at=now)

    if failed:
        logger.warning("%s payment reminders could not be sent", failed)
    return {"due": len(due), "sent": sent, "failed": failed}
