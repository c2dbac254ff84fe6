from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "homestay",
        "guest",
        "check_in_date",
        "check_out_date",
        "total_amount",
        "status",
        "payment_status",
        "host_payout_status",
    )
    list_filter = ("status", "payment_status", "host_payout_status", "refund_status")
    search_fields = ("payment_reference", "homestay__title", "guest__email")
    date_hierarchy = "check_in_date"
    readonly_fields = (
        "total_amount",
        "host_amount",
        "platform_commission",
        "payment_reference",
        "refund_snapshot",
        "created_at",
        "updated_at",
    )
