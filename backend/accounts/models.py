from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"
    ROLES = [
        (GUEST, "Guest"),
        (HOST, "Host"),
        (ADMIN, "Admin"),
    ]

    display_name = models.CharField(max_length=120, blank=True)
    role = models.CharField(max_length=10, choices=ROLES, default=GUEST)
    payout_account_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe connected account receiving host payouts.",
    )

    @property
    def is_platform_admin(self) -> bool:
        return self.is_superuser or self.role == self.ADMIN
