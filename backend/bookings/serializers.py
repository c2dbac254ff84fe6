from rest_framework import serializers

from bookings.lifecycle import derive_display_status
from bookings.models import Booking
from bookings.services.refunds import can_cancel


class BookingSummarySerializer(serializers.ModelSerializer):
    homestay_title = serializers.CharField(source="homestay.title", read_only=True)
    guest_email = serializers.EmailField(source="guest.email", read_only=True)
    display_status = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "homestay_title",
            "guest_email",
            "check_in_date",
            "check_out_date",
            "total_amount",
            "currency",
            "payment_reference",
            "payment_status",
            "display_status",
        ]
        read_only_fields = fields

    def get_display_status(self, obj: Booking) -> str:
        return derive_display_status(obj, self.context.get("now"))


class BookingSerializer(BookingSummarySerializer):
    can_cancel = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "homestay",
            "homestay_title",
            "host",
            "guest",
            "guest_email",
            "check_in_date",
            "check_out_date",
            "number_of_nights",
            "number_of_guests",
            "guest_details",
            "special_requests",
            "base_price",
            "cleaning_fee",
            "service_fee",
            "total_amount",
            "host_amount",
            "platform_commission",
            "commission_rate",
            "currency",
            "status",
            "display_status",
            "can_cancel",
            "payment_status",
            "payment_reference",
            "payment_transaction_id",
            "paid_amount",
            "paid_at",
            "verification_method",
            "verified_at",
            "host_payout_status",
            "host_payout_amount",
            "host_payout_reference",
            "host_payout_paid_at",
            "cancelled_at",
            "cancellation_reason",
            "refund_snapshot",
            "refund_amount",
            "refund_status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_can_cancel(self, obj: Booking) -> bool:
        return can_cancel(obj, self.context.get("now"))


class GuestDetailsSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)


class BookingCreateSerializer(serializers.Serializer):
    homestay_id = serializers.IntegerField(min_value=1)
    check_in_date = serializers.DateField()
    check_out_date = serializers.DateField()
    number_of_guests = serializers.IntegerField(min_value=1, default=1)
    guest_details = GuestDetailsSerializer(required=False)
    special_requests = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["check_out_date"] <= attrs["check_in_date"]:
            raise serializers.ValidationError({"check_out_date": "Check-out must be after check-in."})
        return attrs


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class VerifyPaymentSerializer(serializers.Serializer):
    transaction_id = serializers.CharField(max_length=100)
    amount = serializers.IntegerField(min_value=1, required=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")
