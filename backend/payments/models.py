from django.conf import settings
from django.db import models


class PaymentSession(models.Model):
    """The QR bank-transfer session issued for a booking. One per booking."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payment_session",
    )
    reference = models.CharField(max_length=40, unique=True)
    qr_payload = models.URLField(max_length=500)
    bank_bin = models.CharField(max_length=10)
    bank_name = models.CharField(max_length=100, blank=True)
    account_number = models.CharField(max_length=30)
    account_name = models.CharField(max_length=100)
    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=10, default="VND")
    issued_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    regeneration_count = models.PositiveIntegerField(default=0)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-issued_at"]

    def __str__(self):
        return f"{self.reference} ({self.amount} {self.currency})"

    def is_expired(self, now) -> bool:
        return now > self.expires_at


class BankTransaction(models.Model):
    """A bank credit that could not be matched to a booking automatically."""

    UNMATCHED = "unmatched"
    MATCHED = "matched"
    REFUNDED = "refunded"
    IGNORED = "ignored"
    STATUSES = [
        (UNMATCHED, "Unmatched"),
        (MATCHED, "Matched"),
        (REFUNDED, "Refunded"),
        (IGNORED, "Ignored"),
    ]
    ALLOWED_TRANSITIONS = {
        UNMATCHED: {MATCHED, IGNORED, REFUNDED},
        IGNORED: {REFUNDED},
        MATCHED: set(),
        REFUNDED: set(),
    }

    UNMATCH_NO_REFERENCE = "no_reference"
    UNMATCH_INVALID_REFERENCE = "invalid_reference"
    UNMATCH_BOOKING_NOT_FOUND = "booking_not_found"
    UNMATCH_AMOUNT_MISMATCH = "amount_mismatch"
    UNMATCH_ALREADY_PAID = "already_paid"
    UNMATCH_OTHER = "other"
    UNMATCH_REASONS = [
        (UNMATCH_NO_REFERENCE, "No reference in content"),
        (UNMATCH_INVALID_REFERENCE, "Invalid reference"),
        (UNMATCH_BOOKING_NOT_FOUND, "Booking not found"),
        (UNMATCH_AMOUNT_MISMATCH, "Amount mismatch"),
        (UNMATCH_ALREADY_PAID, "Booking already paid"),
        (UNMATCH_OTHER, "Other"),
    ]

    transaction_id = models.CharField(max_length=100, unique=True)
    amount = models.PositiveBigIntegerField()
    content = models.TextField(blank=True)
    bank_code = models.CharField(max_length=20, blank=True)
    account_number = models.CharField(max_length=30, blank=True)
    transaction_date = models.DateTimeField(db_index=True)
    status = models.CharField(max_length=10, choices=STATUSES, default=UNMATCHED, db_index=True)
    unmatch_reason = models.CharField(max_length=20, choices=UNMATCH_REASONS, blank=True)
    raw_payload = models.JSONField(default=dict, blank=True)

    matched_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="bank_transactions",
    )
    matched_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reconciled_transactions",
    )
    matched_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    amount_difference = models.BigIntegerField(null=True, blank=True)
    amount_flagged = models.BooleanField(default=False)
    amount_within_tolerance = models.BooleanField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-transaction_date", "-id"]
        indexes = [models.Index(fields=["status", "transaction_date"], name="payments_ba_status_7d2e4a_idx")]

    def __str__(self):
        return f"{self.transaction_id} ({self.amount}, {self.status})"

    def can_transition_to(self, status: str) -> bool:
        return status in self.ALLOWED_TRANSITIONS.get(self.status, set())
