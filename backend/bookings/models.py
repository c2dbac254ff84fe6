from datetime import datetime, time
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Booking(models.Model):
    """Reservation of a homestay by a guest, with its pricing and payment state."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STATUSES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (CHECKED_IN, "Checked in"),
        (CHECKED_OUT, "Checked out"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
    ]
    TERMINAL_STATUSES = {CANCELLED, COMPLETED, CHECKED_OUT}

    PAYMENT_PENDING = "pending"
    PAYMENT_COMPLETED = "completed"
    PAYMENT_FAILED = "failed"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_PARTIALLY_REFUNDED = "partially_refunded"
    PAYMENT_STATUSES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_COMPLETED, "Completed"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
        (PAYMENT_PARTIALLY_REFUNDED, "Partially refunded"),
    ]

    VERIFICATION_WEBHOOK = "webhook"
    VERIFICATION_POLLING = "polling"
    VERIFICATION_MANUAL = "manual"
    VERIFICATION_METHODS = [
        (VERIFICATION_WEBHOOK, "Webhook"),
        (VERIFICATION_POLLING, "Polling"),
        (VERIFICATION_MANUAL, "Manual"),
    ]

    PAYOUT_PENDING = "pending"
    PAYOUT_PROCESSING = "processing"
    PAYOUT_COMPLETED = "completed"
    PAYOUT_FAILED = "failed"
    PAYOUT_STATUSES = [
        (PAYOUT_PENDING, "Pending"),
        (PAYOUT_PROCESSING, "Processing"),
        (PAYOUT_COMPLETED, "Completed"),
        (PAYOUT_FAILED, "Failed"),
    ]

    REFUND_NOT_REQUIRED = "not_required"
    REFUND_STATUSES = [(REFUND_NOT_REQUIRED, "Not required")] + PAYOUT_STATUSES

    guest = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    homestay = models.ForeignKey(
        "homestays.Homestay",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="hosted_bookings",
    )
    check_in_date = models.DateField(db_index=True)
    check_out_date = models.DateField(db_index=True)
    number_of_nights = models.PositiveIntegerField()
    number_of_guests = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    guest_details = models.JSONField(default=dict, blank=True)
    special_requests = models.TextField(blank=True)

    # Pricing snapshot taken at checkout; amounts in whole currency units.
    base_price = models.PositiveBigIntegerField()
    cleaning_fee = models.PositiveBigIntegerField(default=0)
    service_fee = models.PositiveBigIntegerField(default=0)
    total_amount = models.PositiveBigIntegerField()
    host_amount = models.PositiveBigIntegerField()
    platform_commission = models.PositiveBigIntegerField()
    commission_rate = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal("0.10"))
    currency = models.CharField(max_length=10, default="VND")

    status = models.CharField(max_length=12, choices=STATUSES, default=PENDING, db_index=True)

    payment_status = models.CharField(
        max_length=20,
        choices=PAYMENT_STATUSES,
        default=PAYMENT_PENDING,
        db_index=True,
    )
    payment_reference = models.CharField(max_length=40, blank=True, db_index=True)
    payment_transaction_id = models.CharField(max_length=100, blank=True)
    paid_amount = models.PositiveBigIntegerField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    verification_method = models.CharField(max_length=10, choices=VERIFICATION_METHODS, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="verified_bookings",
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    verification_notes = models.TextField(blank=True)

    host_payout_status = models.CharField(max_length=12, choices=PAYOUT_STATUSES, default=PAYOUT_PENDING)
    host_payout_amount = models.PositiveBigIntegerField(null=True, blank=True)
    host_payout_reference = models.CharField(max_length=100, blank=True)
    host_payout_paid_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_bookings",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    refund_snapshot = models.JSONField(null=True, blank=True)
    refund_amount = models.PositiveBigIntegerField(null=True, blank=True)
    refund_status = models.CharField(max_length=12, choices=REFUND_STATUSES, blank=True)
    refund_reference = models.CharField(max_length=100, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["guest", "status"], name="bookings_bo_guest_i_5c1f0e_idx"),
            models.Index(fields=["host", "status"], name="bookings_bo_host_id_8a2d41_idx"),
            models.Index(fields=["payment_status", "paid_at"], name="bookings_bo_payment_3e9b7c_idx"),
        ]

    def __str__(self):
        return f"{self.homestay.title} booking #{self.pk}"

    @property
    def check_in_at(self) -> datetime:
        """Check-in moment: the check-in date at the configured check-in hour, local time."""
        naive = datetime.combine(self.check_in_date, time(hour=settings.BOOKING_CHECK_IN_HOUR))
        return timezone.make_aware(naive, timezone.get_current_timezone())

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PAYMENT_COMPLETED
