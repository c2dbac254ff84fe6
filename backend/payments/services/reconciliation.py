from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, QuerySet, Sum
from django.utils import timezone

from bookings.lifecycle import PENDING_PAYMENT, derive_display_status
from bookings.models import Booking
from bookings.services.bookings import get_booking, transition_payment_completed
from core.exceptions import NotFoundError, StateConflictError, ValidationError
from payments.models import BankTransaction
from payments.services.sessions import parse_reference, verify_reference

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=24)
MAX_SUGGESTIONS = 5


def get_transaction(transaction_pk, *, for_update: bool = False) -> BankTransaction:
    queryset = BankTransaction.objects.select_related("matched_booking", "matched_by")
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=transaction_pk)
    except (BankTransaction.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Transaction not found.", details={"transaction_id": transaction_pk})


def transaction_queryset(
    *,
    queryset: QuerySet | None = None,
    status: str | None = BankTransaction.UNMATCHED,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str = "",
    min_amount: int | None = None,
    max_amount: int | None = None,
) -> QuerySet:
    """Reconciliation queue, newest first. ``status=None`` lists every status."""

    if queryset is None:
        queryset = BankTransaction.objects.all()
    queryset = queryset.select_related("matched_booking", "matched_by")
    if status:
        queryset = queryset.filter(status=status)
    if date_from:
        queryset = queryset.filter(transaction_date__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(transaction_date__date__lte=date_to)
    search = (search or "").strip()
    if search:
        queryset = queryset.filter(Q(content__icontains=search) | Q(transaction_id__icontains=search))
    if min_amount is not None:
        queryset = queryset.filter(amount__gte=min_amount)
    if max_amount is not None:
        queryset = queryset.filter(amount__lte=max_amount)
    return queryset.order_by("-transaction_date", "-id")


def _amount_check(transaction_amount: int, expected: int) -> Dict[str, Any]:
    difference = transaction_amount - expected
    return {
        "amount_difference": difference,
        "amount_flagged": difference != 0,
        "amount_within_tolerance": abs(difference) <= settings.PAYMENT_AMOUNT_TOLERANCE,
    }


def match_transaction(
    transaction_pk,
    booking_id,
    *,
    notes: str = "",
    actor=None,
    now: datetime | None = None,
) -> BankTransaction:
    """
    Bind an unmatched bank transaction to a booking awaiting payment.

    The transaction update and the booking's payment transition commit together
    or not at all. Amount differences are recorded and logged but never block.
    """

    now = now or timezone.now()
    with transaction.atomic():
        bank_txn = get_transaction(transaction_pk, for_update=True)
        if bank_txn.status != BankTransaction.UNMATCHED:
            raise StateConflictError(
                f"Transaction is already {bank_txn.status}.",
                details={"transaction_id": bank_txn.pk, "status": bank_txn.status},
            )
        booking = get_booking(booking_id, for_update=True)
        display_status = derive_display_status(booking, now)
        if display_status != PENDING_PAYMENT:
            raise StateConflictError(
                "Only bookings awaiting payment can be matched.",
                details={"booking_id": booking.pk, "status": display_status},
            )

        amount_check = _amount_check(bank_txn.amount, booking.total_amount)
        updated = BankTransaction.objects.filter(
            pk=bank_txn.pk,
            status=BankTransaction.UNMATCHED,
        ).update(
            status=BankTransaction.MATCHED,
            matched_booking=booking,
            matched_by=actor,
            matched_at=now,
            notes=notes or "",
            updated_at=now,
            **amount_check,
        )
        if not updated:
            raise StateConflictError(
                "Transaction was processed by someone else.",
                details={"transaction_id": bank_txn.pk},
            )

        verification_notes = notes or f"Matched bank transaction {bank_txn.transaction_id}"
        booking, changed = transition_payment_completed(
            booking.pk,
            bank_txn.transaction_id,
            amount=bank_txn.amount,
            method=Booking.VERIFICATION_MANUAL,
            verified_by=actor,
            notes=verification_notes,
            paid_at=bank_txn.transaction_date,
        )
        if not changed:
            raise StateConflictError(
                "Booking was paid by another transaction.",
                details={"booking_id": booking.pk},
            )

    if amount_check["amount_flagged"]:
        logger.warning(
            "Amount mismatch matching transaction %s to booking %s: received=%s expected=%s "
            "difference=%s within_tolerance=%s",
            bank_txn.transaction_id,
            booking.pk,
            bank_txn.amount,
            booking.total_amount,
            amount_check["amount_difference"],
            amount_check["amount_within_tolerance"],
        )
    logger.info("Transaction %s matched to booking %s", bank_txn.transaction_id, booking.pk)
    bank_txn.refresh_from_db()
    return bank_txn


def _advance(transaction_pk, target: str, *, notes: str, actor, now: datetime | None) -> BankTransaction:
    now = now or timezone.now()
    with transaction.atomic():
        bank_txn = get_transaction(transaction_pk, for_update=True)
        if not bank_txn.can_transition_to(target):
            raise StateConflictError(
                f"Cannot move transaction from {bank_txn.status} to {target}.",
                details={"transaction_id": bank_txn.pk, "status": bank_txn.status},
            )
        updated = BankTransaction.objects.filter(pk=bank_txn.pk, status=bank_txn.status).update(
            status=target,
            matched_by=actor,
            matched_at=now,
            notes=notes or bank_txn.notes,
            updated_at=now,
        )
        if not updated:
            raise StateConflictError(
                "Transaction was processed by someone else.",
                details={"transaction_id": bank_txn.pk},
            )
    logger.info("Transaction %s marked %s", bank_txn.transaction_id, target)
    bank_txn.refresh_from_db()
    return bank_txn


def ignore_transaction(transaction_pk, *, notes: str = "", actor=None, now: datetime | None = None):
    return _advance(transaction_pk, BankTransaction.IGNORED, notes=notes, actor=actor, now=now)


def mark_transaction_refunded(transaction_pk, *, notes: str = "", actor=None, now: datetime | None = None):
    """Record that the money was sent back to the payer outside the platform."""
    return _advance(transaction_pk, BankTransaction.REFUNDED, notes=notes, actor=actor, now=now)


def _unmatch_reason(content: str, amount: int) -> str:
    reference = parse_reference(content)
    if reference is None:
        return BankTransaction.UNMATCH_NO_REFERENCE
    booking_id = verify_reference(reference)
    if booking_id is None:
        return BankTransaction.UNMATCH_INVALID_REFERENCE
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        return BankTransaction.UNMATCH_BOOKING_NOT_FOUND
    if booking.is_paid:
        return BankTransaction.UNMATCH_ALREADY_PAID
    if booking.status != Booking.CANCELLED and booking.total_amount != amount:
        return BankTransaction.UNMATCH_AMOUNT_MISMATCH
    return BankTransaction.UNMATCH_OTHER


def record_unmatched_transaction(
    *,
    transaction_id: str,
    amount: int,
    transaction_date: datetime,
    content: str = "",
    bank_code: str = "",
    account_number: str = "",
    unmatch_reason: str = "",
    raw_payload: Dict[str, Any] | None = None,
) -> tuple[BankTransaction, bool]:
    """
    Queue a bank credit for manual reconciliation.

    Keyed by the bank's ``transaction_id``; re-delivering the same credit returns
    the stored record with ``created=False``.
    """

    transaction_id = (transaction_id or "").strip()
    if not transaction_id:
        raise ValidationError("Transaction id is required.", details={"transaction_id": "This field is required."})
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be positive.", details={"amount": amount})

    existing = BankTransaction.objects.filter(transaction_id=transaction_id).first()
    if existing is not None:
        return existing, False

    try:
        with transaction.atomic():
            bank_txn = BankTransaction.objects.create(
                transaction_id=transaction_id,
                amount=amount,
                content=content or "",
                bank_code=bank_code or "",
                account_number=account_number or "",
                transaction_date=transaction_date,
                unmatch_reason=unmatch_reason or _unmatch_reason(content, amount),
                raw_payload=raw_payload or {},
            )
    except IntegrityError:
        return BankTransaction.objects.get(transaction_id=transaction_id), False

    logger.info(
        "Unmatched transaction %s queued (amount=%s, reason=%s)",
        transaction_id,
        amount,
        bank_txn.unmatch_reason,
    )
    return bank_txn, True


def suggest_bookings(bank_txn: BankTransaction, *, now: datetime | None = None) -> List[Booking]:
    """Bookings awaiting payment that this transaction most likely pays for."""

    now = now or timezone.now()
    candidates = Booking.objects.select_related("homestay", "guest").filter(
        payment_status=Booking.PAYMENT_PENDING,
        check_out_date__gt=timezone.localdate(now),
    ).exclude(status__in=Booking.TERMINAL_STATUSES)

    reference = parse_reference(bank_txn.content)
    booking_id = verify_reference(reference) if reference else None
    if booking_id is not None:
        by_reference = [
            b for b in candidates.filter(pk=booking_id) if derive_display_status(b, now) == PENDING_PAYMENT
        ]
        if by_reference:
            return by_reference

    tolerance = settings.PAYMENT_AMOUNT_TOLERANCE
    by_amount = candidates.filter(
        total_amount__gte=max(bank_txn.amount - tolerance, 0),
        total_amount__lte=bank_txn.amount + tolerance,
    ).order_by("check_in_date", "id")[:MAX_SUGGESTIONS]
    return [b for b in by_amount if derive_display_status(b, now) == PENDING_PAYMENT]


def payment_statistics(date_from: date | None = None, date_to: date | None = None) -> Dict[str, int]:
    """Revenue split over bookings whose payment completed within the date range."""

    queryset = Booking.objects.filter(payment_status=Booking.PAYMENT_COMPLETED)
    if date_from:
        queryset = queryset.filter(paid_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(paid_at__date__lte=date_to)
    totals = queryset.aggregate(
        total_revenue=Sum("total_amount"),
        total_host_payouts=Sum("host_amount"),
        total_platform_commission=Sum("platform_commission"),
        total_bookings=Count("id"),
    )
    return {key: value or 0 for key, value in totals.items()}


def transaction_statistics(now: datetime | None = None) -> Dict[str, Any]:
    now = now or timezone.now()
    rows = BankTransaction.objects.order_by().values("status").annotate(count=Count("id"), amount=Sum("amount"))
    by_status = {status: {"count": 0, "amount": 0} for status, _ in BankTransaction.STATUSES}
    for row in rows:
        by_status[row["status"]] = {"count": row["count"], "amount": row["amount"] or 0}
    recent = BankTransaction.objects.filter(
        status=BankTransaction.UNMATCHED,
        transaction_date__gte=now - RECENT_WINDOW,
    ).count()
    return {
        "by_status": by_status,
        "total": sum(item["count"] for item in by_status.values()),
        "unmatched_amount": by_status[BankTransaction.UNMATCHED]["amount"],
        "recent_unmatched": recent,
    }

