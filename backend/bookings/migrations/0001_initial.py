import django.core.validators
import django.db.models.deletion
from decimal import Decimal

from django.conf import settings
from django.db import migrations, models

PAYOUT_CHOICES = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("completed", "Completed"),
    ("failed", "Failed"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("homestays", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("check_in_date", models.DateField(db_index=True)),
                ("check_out_date", models.DateField(db_index=True)),
                ("number_of_nights", models.PositiveIntegerField()),
                (
                    "number_of_guests",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("guest_details", models.JSONField(blank=True, default=dict)),
                ("special_requests", models.TextField(blank=True)),
                ("base_price", models.PositiveBigIntegerField()),
                ("cleaning_fee", models.PositiveBigIntegerField(default=0)),
                ("service_fee", models.PositiveBigIntegerField(default=0)),
                ("total_amount", models.PositiveBigIntegerField()),
                ("host_amount", models.PositiveBigIntegerField()),
                ("platform_commission", models.PositiveBigIntegerField()),
                (
                    "commission_rate",
                    models.DecimalField(decimal_places=2, default=Decimal("0.10"), max_digits=4),
                ),
                ("currency", models.CharField(default="VND", max_length=10)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("checked_in", "Checked in"),
                            ("checked_out", "Checked out"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=12,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                            ("partially_refunded", "Partially refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("payment_reference", models.CharField(blank=True, db_index=True, max_length=40)),
                ("payment_transaction_id", models.CharField(blank=True, max_length=100)),
                ("paid_amount", models.PositiveBigIntegerField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "verification_method",
                    models.CharField(
                        blank=True,
                        choices=[("webhook", "Webhook"), ("polling", "Polling"), ("manual", "Manual")],
                        max_length=10,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("verification_notes", models.TextField(blank=True)),
                (
                    "host_payout_status",
                    models.CharField(choices=PAYOUT_CHOICES, default="pending", max_length=12),
                ),
                ("host_payout_amount", models.PositiveBigIntegerField(blank=True, null=True)),
                ("host_payout_reference", models.CharField(blank=True, max_length=100)),
                ("host_payout_paid_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True)),
                ("refund_snapshot", models.JSONField(blank=True, null=True)),
                ("refund_amount", models.PositiveBigIntegerField(blank=True, null=True)),
                (
                    "refund_status",
                    models.CharField(
                        blank=True,
                        choices=[("not_required", "Not required")] + PAYOUT_CHOICES,
                        max_length=12,
                    ),
                ),
                ("refund_reference", models.CharField(blank=True, max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "guest",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "homestay",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="homestays.homestay",
                    ),
                ),
                (
                    "host",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="hosted_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "verified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="verified_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cancelled_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["guest", "status"], name="bookings_bo_guest_i_5c1f0e_idx"),
                    models.Index(fields=["host", "status"], name="bookings_bo_host_id_8a2d41_idx"),
                    models.Index(fields=["payment_status", "paid_at"], name="bookings_bo_payment_3e9b7c_idx"),
                ],
            },
        ),
    ]
