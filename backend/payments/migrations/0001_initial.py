import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentSession",
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
                ("reference", models.CharField(max_length=40, unique=True)),
                ("qr_payload", models.URLField(max_length=500)),
                ("bank_bin", models.CharField(max_length=10)),
                ("bank_name", models.CharField(blank=True, max_length=100)),
                ("account_number", models.CharField(max_length=30)),
                ("account_name", models.CharField(max_length=100)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="VND", max_length=10)),
                ("issued_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
                ("regeneration_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_session",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-issued_at"],
            },
        ),
        migrations.CreateModel(
            name="BankTransaction",
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
                ("transaction_id", models.CharField(max_length=100, unique=True)),
                ("amount", models.PositiveBigIntegerField()),
                ("content", models.TextField(blank=True)),
                ("bank_code", models.CharField(blank=True, max_length=20)),
                ("account_number", models.CharField(blank=True, max_length=30)),
                ("transaction_date", models.DateTimeField(db_index=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("unmatched", "Unmatched"),
                            ("matched", "Matched"),
                            ("refunded", "Refunded"),
                            ("ignored", "Ignored"),
                        ],
                        db_index=True,
                        default="unmatched",
                        max_length=10,
                    ),
                ),
                (
                    "unmatch_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("no_reference", "No reference in content"),
                            ("invalid_reference", "Invalid reference"),
                            ("booking_not_found", "Booking not found"),
                            ("amount_mismatch", "Amount mismatch"),
                            ("already_paid", "Booking already paid"),
                            ("other", "Other"),
                        ],
                        max_length=20,
                    ),
                ),
                ("raw_payload", models.JSONField(blank=True, default=dict)),
                ("matched_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("amount_difference", models.BigIntegerField(blank=True, null=True)),
                ("amount_flagged", models.BooleanField(default=False)),
                ("amount_within_tolerance", models.BooleanField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "matched_booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bank_transactions",
                        to="bookings.booking",
                    ),
                ),
                (
                    "matched_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="reconciled_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-transaction_date", "-id"],
                "indexes": [
                    models.Index(fields=["status", "transaction_date"], name="payments_ba_status_7d2e4a_idx"),
                ],
            },
        ),
    ]
