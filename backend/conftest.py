from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from bookings.pricing import calculate_pricing
from homestays.models import Homestay

User = get_user_model()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def host(db):
    return User.objects.create_user(
        username="host@example.com",
        email="host@example.com",
        password="hostpass",
        first_name="Hoa",
        last_name="Host",
        role=User.HOST,
    )


@pytest.fixture
def guest(db):
    return User.objects.create_user(
        username="guest@example.com",
        email="guest@example.com",
        password="guestpass",
        first_name="Greta",
        last_name="Guest",
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        username="admin@example.com",
        email="admin@example.com",
        password="adminpass",
        role=User.ADMIN,
    )


@pytest.fixture
def homestay(host):
    # One night here costs exactly 1,000,000 including a 50,000 service fee.
    return Homestay.objects.create(
        host=host,
        title="River House",
        location="Hoi An",
        base_price=950000,
        cleaning_fee=0,
        service_fee=50000,
        max_guests=4,
    )


@pytest.fixture
def make_booking(guest, homestay):
    """Create bookings directly, bypassing the date checks of ``create_booking``."""

    def _make(check_in=None, nights=1, *, status=Booking.PENDING, payment_status=Booking.PAYMENT_PENDING, **extra):
        check_in = check_in or timezone.localdate() + timedelta(days=10)
        pricing = calculate_pricing(
            base_price=homestay.base_price,
            number_of_nights=nights,
            cleaning_fee=homestay.cleaning_fee,
            service_fee=homestay.service_fee,
        )
        fields = {
            "guest": guest,
            "homestay": homestay,
            "host": homestay.host,
            "check_in_date": check_in,
            "check_out_date": check_in + timedelta(days=nights),
            "status": status,
            "payment_status": payment_status,
            "guest_details": {"first_name": "Greta", "last_name": "Guest", "email": guest.email},
            **pricing.as_dict(),
        }
        if payment_status == Booking.PAYMENT_COMPLETED:
            fields.setdefault("paid_amount", pricing.total_amount)
            fields.setdefault("paid_at", timezone.now())
        fields.update(extra)
        return Booking.objects.create(**fields)

    return _make
