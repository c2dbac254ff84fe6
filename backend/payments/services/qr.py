from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from django.conf import settings

from core.exceptions import ExternalDependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BankAccount:
    bank_bin: str
    bank_name: str
    account_number: str
    account_name: str


def receiving_account() -> BankAccount:
    """The platform account guests transfer to, read from settings."""
    account = BankAccount(
        bank_bin=str(getattr(settings, "BANK_BIN", "") or ""),
        bank_name=getattr(settings, "BANK_NAME", "") or "",
        account_number=str(getattr(settings, "BANK_ACCOUNT_NUMBER", "") or ""),
        account_name=getattr(settings, "BANK_ACCOUNT_NAME", "") or "",
    )
    missing = [
        name
        for name, value in (
            ("BANK_BIN", account.bank_bin),
            ("BANK_ACCOUNT_NUMBER", account.account_number),
            ("BANK_ACCOUNT_NAME", account.account_name),
        )
        if not value
    ]
    if missing:
        logger.error("Receiving bank account is not configured: missing %s", ", ".join(missing))
        raise ExternalDependencyError(
            "Payment QR generator is not configured.",
            details={"missing_settings": missing},
        )
    return account


def build_qr_payload(*, amount: int, reference: str, account: BankAccount) -> str:
    """
    Build a VietQR image URL for a bank transfer.

    The transfer description (``addInfo``) carries the booking reference so the
    incoming credit can be matched back to the booking.
    """

    if amount <= 0:
        raise ExternalDependencyError("QR amount must be positive.", details={"amount": amount})
    base_url = settings.VIETQR_IMAGE_URL.rstrip("/")
    template = settings.VIETQR_TEMPLATE
    query = urlencode(
        {
            "amount": amount,
            "addInfo": reference,
            "accountName": account.account_name,
        }
    )
    return f"{base_url}/{account.bank_bin}-{account.account_number}-{template}.png?{query}"
