from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Homestay(models.Model):
    """Listing a guest can book; only the fields booking pricing depends on."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    STATUSES = [
        (ACTIVE, "Active"),
        (INACTIVE, "Inactive"),
    ]

    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="homestays",
    )
    title = models.CharField(max_length=200)
    location = models.CharField(max_length=200, blank=True)
    base_price = models.PositiveBigIntegerField(help_text="Price per night in whole currency units.")
    cleaning_fee = models.PositiveBigIntegerField(default=0)
    service_fee = models.PositiveBigIntegerField(default=0)
    currency = models.CharField(max_length=10, default="VND")
    max_guests = models.PositiveIntegerField(default=2, validators=[MinValueValidator(1)])
    status = models.CharField(max_length=12, choices=STATUSES, default=ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["title", "id"]

    def __str__(self):
        return self.title

    @property
    def is_bookable(self) -> bool:
        return self.status == self.ACTIVE
