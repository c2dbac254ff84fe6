from django.contrib import admin

from .models import Homestay


@admin.register(Homestay)
class HomestayAdmin(admin.ModelAdmin):
    list_display = ("title", "host", "base_price", "max_guests", "status")
    list_filter = ("status",)
    search_fields = ("title", "location", "host__email")
