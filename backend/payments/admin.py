from django.contrib import admin

from .models import BankTransaction, PaymentSession


@admin.register(PaymentSession)
class PaymentSessionAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "booking",
        "amount",
        "issued_at",
        "expires_at",
        "regeneration_count",
        "reminder_sent_at",
    )
    search_fields = ("reference",)
    readonly_fields = ("reference", "qr_payload", "issued_at", "expires_at")


@admin.register(BankTransaction)
class BankTransactionAdmin(admin.ModelAdmin):
    list_display = ("transaction_id", "amount", "transaction_date", "status", "matched_booking", "amount_flagged")
    list_filter = ("status", "unmatch_reason", "amount_flagged")
    search_fields = ("transaction_id", "content")
    readonly_fields = ("raw_payload", "amount_difference", "amount_within_tolerance")
