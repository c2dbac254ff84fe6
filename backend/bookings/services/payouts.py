from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from django.conf import settings

from bookings.models import Booking
from core.exceptions import ExternalDependencyError

logger = logging.getLogger(__name__)


@dataclass
class TransferStub:
    """
    Stand-in for a Stripe Transfer/Payout when running in stub mode.

    Local development and tests never move real money; they get predictable
    identifiers so the booking records look exactly as they would after Stripe.
    """

    id: str
    amount: int
    currency: str
    status: str = "paid"


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def _should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def _configure_stripe():
    import stripe

    api_key = _get_stripe_api_key()
    if not api_key:
        raise ExternalDependencyError("Stripe secret key is not configured.")
    stripe.api_key = api_key
    return stripe


def send_host_payout(booking: Booking):
    """
    Transfer the host's share of a paid booking to the host's connected account.

    Returns an object exposing ``id``, ``amount`` and ``currency``.
    """

    amount = booking.host_amount
    currency = settings.PAYOUT_CURRENCY
    if _should_use_stub():
        logger.info("Stub host payout of %s %s for booking %s", amount, currency, booking.pk)
        return TransferStub(id=f"tr_test_{uuid4().hex}", amount=amount, currency=currency)

    destination = booking.host.payout_account_id
    if not destination:
        raise ExternalDependencyError(
            "Host has no payout account configured.",
            details={"host_id": booking.host_id},
        )

    stripe = _configure_stripe()
    try:
        return stripe.Transfer.create(
            amount=amount,
            currency=currency,
            destination=destination,
            transfer_group=f"booking-{booking.pk}",
            metadata={
                "booking_id": booking.pk,
                "homestay_id": booking.homestay_id,
                "kind": "host_payout",
            },
        )
    except stripe.StripeError as exc:
        logger.exception("Stripe host payout failed for booking %s: %s", booking.pk, exc)
        raise ExternalDependencyError(str(exc)) from exc


def disburse_guest_refund(booking: Booking, amount: int):
    """
    Send a cancellation refund out of the platform balance.

    Returns an object exposing ``id``, ``amount`` and ``currency``.
    """

    currency = settings.PAYOUT_CURRENCY
    if _should_use_stub():
        logger.info("Stub refund of %s %s for booking %s", amount, currency, booking.pk)
        return TransferStub(id=f"po_test_{uuid4().hex}", amount=amount, currency=currency)

    stripe = _configure_stripe()
    try:
        return stripe.Payout.create(
            amount=amount,
            currency=currency,
            description=f"Refund for booking {booking.pk}",
            metadata={
                "booking_id": booking.pk,
                "payment_reference": booking.payment_reference,
                "kind": "guest_refund",
            },
        )
    except stripe.StripeError as exc:
        logger.exception("Stripe refund payout failed for booking %s: %s", booking.pk, exc)
        raise ExternalDependencyError(str(exc)) from exc
