from rest_framework import serializers

from bookings.serializers import BookingSummarySerializer
from payments.models import BankTransaction, PaymentSession


class PaymentSessionSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(read_only=True)
    qr_code_url = serializers.CharField(source="qr_payload", read_only=True)
    status = serializers.SerializerMethodField()
    expires_in_seconds = serializers.SerializerMethodField()

    class Meta:
        model = PaymentSession
        fields = [
            "booking_id",
            "reference",
            "qr_code_url",
            "bank_bin",
            "bank_name",
            "account_number",
            "account_name",
            "amount",
            "currency",
            "issued_at",
            "expires_at",
            "expires_in_seconds",
            "regeneration_count",
            "status",
        ]
        read_only_fields = fields

    def get_status(self, obj: PaymentSession) -> str | None:
        return self.context.get("status")

    def get_expires_in_seconds(self, obj: PaymentSession) -> int:
        now = self.context.get("now")
        if now is None:
            return 0
        return max(int((obj.expires_at - now).total_seconds()), 0)


class BankTransactionSerializer(serializers.ModelSerializer):
    matched_booking = BookingSummarySerializer(read_only=True)
    matched_by_email = serializers.EmailField(source="matched_by.email", read_only=True, default=None)
    unmatch_reason_display = serializers.CharField(source="get_unmatch_reason_display", read_only=True)

    class Meta:
        model = BankTransaction
        fields = [
            "id",
            "transaction_id",
            "amount",
            "content",
            "bank_code",
            "account_number",
            "transaction_date",
            "status",
            "unmatch_reason",
            "unmatch_reason_display",
            "matched_booking",
            "matched_by_email",
            "matched_at",
            "notes",
            "amount_difference",
            "amount_flagged",
            "amount_within_tolerance",
            "created_at",
        ]
        read_only_fields = fields


class MatchTransactionSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class TransactionNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class DateRangeSerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"date_to": "End date must not be before start date."})
        return attrs
