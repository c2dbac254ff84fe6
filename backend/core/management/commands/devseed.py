from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from bookings.models import Booking
from bookings.pricing import calculate_pricing
from bookings.services.bookings import cancel_booking, create_booking, transition_payment_completed
from homestays.models import Homestay
from payments.models import BankTransaction, PaymentSession
from payments.services.reconciliation import record_unmatched_transaction
from payments.services.sessions import create_session


SEED_PASSWORD = "Homestay123!"
SUPERUSER_EMAIL = "admin@homestay.test"
SUPERUSER_PASSWORD = "AdminHomestay123!"


class Command(BaseCommand):
    help = "Populate the local development database with sample data."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        today = timezone.localdate()
        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating users"))
            host = self._ensure_user(
                email="host@homestay.test",
                first_name="Hoa",
                last_name="Host",
                role=User.HOST,
            )
            guest = self._ensure_user(
                email="guest@homestay.test",
                first_name="Greta",
                last_name="Guest",
                role=User.GUEST,
            )
            admin = self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating homestays"))
            river_house = self._ensure_homestay(
                host=host,
                title="River House Hoi An",
                location="Hoi An, Quang Nam",
                base_price=300000,
                cleaning_fee=30000,
                service_fee=30000,
                max_guests=4,
            )
            hill_cabin = self._ensure_homestay(
                host=host,
                title="Hill Cabin Da Lat",
                location="Da Lat, Lam Dong",
                base_price=450000,
                cleaning_fee=50000,
                service_fee=50000,
                max_guests=2,
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Resetting bookings and transactions"))
            BankTransaction.objects.all().delete()
            PaymentSession.objects.all().delete()
            Booking.objects.all().delete()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            pending = self._book(guest, river_house, today + timedelta(days=10), nights=2)
            session = create_session(pending.pk)

            upcoming = self._book(guest, hill_cabin, today + timedelta(days=20), nights=3)
            transition_payment_completed(
                upcoming.pk,
                "SEED-PAID-0001",
                method=Booking.VERIFICATION_WEBHOOK,
                notes="Seeded payment",
            )

            to_cancel = self._book(guest, river_house, today + timedelta(days=30), nights=1)
            transition_payment_completed(to_cancel.pk, "SEED-PAID-0002", notes="Seeded payment")
            cancel_booking(to_cancel.pk, actor=guest, reason="Change of plans")

            self._past_stay(guest, hill_cabin, today - timedelta(days=14), nights=2)

            self.stdout.write(self.style.MIGRATE_HEADING("Queueing unmatched transactions"))
            now = timezone.now()
            record_unmatched_transaction(
                transaction_id="SEED-TXN-0001",
                amount=pending.total_amount - 5000,
                content=f"CHUYEN KHOAN {session.reference}",
                bank_code="MB",
                transaction_date=now - timedelta(hours=2),
            )
            record_unmatched_transaction(
                transaction_id="SEED-TXN-0002",
                amount=500000,
                content="thanh toan tien phong",
                bank_code="VCB",
                transaction_date=now - timedelta(days=2),
            )

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {admin.email} password: {SUPERUSER_PASSWORD}"))

    def _ensure_user(self, email: str, first_name: str, last_name: str, role: str) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": f"{first_name} {last_name}",
                "role": role,
            },
        )
        if user.role != role:
            user.role = role
            user.save(update_fields=["role"])
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_homestay(self, *, host: User, title: str, **fields) -> Homestay:
        homestay, _ = Homestay.objects.update_or_create(
            host=host,
            title=title,
            defaults={**fields, "status": Homestay.ACTIVE},
        )
        return homestay

    def _book(self, guest: User, homestay: Homestay, check_in, *, nights: int) -> Booking:
        return create_booking(
            guest=guest,
            homestay_id=homestay.pk,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=nights),
            number_of_guests=1,
            guest_details={
                "first_name": guest.first_name,
                "last_name": guest.last_name,
                "email": guest.email,
            },
        )

    def _past_stay(self, guest: User, homestay: Homestay, check_in, *, nights: int) -> Booking:
        pricing = calculate_pricing(
            base_price=homestay.base_price,
            number_of_nights=nights,
            cleaning_fee=homestay.cleaning_fee,
            service_fee=homestay.service_fee,
        )
        paid_at = timezone.now() - timedelta(days=20)
        return Booking.objects.create(
            guest=guest,
            homestay=homestay,
            host=homestay.host,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=nights),
            status=Booking.COMPLETED,
            payment_status=Booking.PAYMENT_COMPLETED,
            paid_amount=pricing.total_amount,
            paid_at=paid_at,
            verification_method=Booking.VERIFICATION_POLLING,
            verified_at=paid_at,
            host_payout_amount=pricing.host_amount,
            **pricing.as_dict(),
        )

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "role": User.ADMIN,
                "is_staff": True,
                "is_superuser": True,
            },
        )
        flag_updates = {}
        if not user.is_staff:
            flag_updates["is_staff"] = True
        if not user.is_superuser:
            flag_updates["is_superuser"] = True
        if flag_updates:
            for attr, value in flag_updates.items():
                setattr(user, attr, value)
            user.save(update_fields=list(flag_updates.keys()))
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
