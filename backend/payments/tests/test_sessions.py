from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from bookings.models import Booking
from core.exceptions import ExternalDependencyError, NotFoundError, StateConflictError
from payments.models import PaymentSession
from payments.services import sessions
from payments.services.qr import BankAccount, build_qr_payload


def test_reference_is_deterministic_and_verifiable():
    reference = sessions.build_reference(42)

    assert reference == sessions.build_reference(42)
    assert reference.startswith("BOOKING00000042")
    assert len(reference) == len("BOOKING") + 8 + 4
    assert sessions.verify_reference(reference) == 42


def test_reference_checksum_depends_on_secret(settings):
    reference = sessions.build_reference(42)
    settings.PAYMENT_REFERENCE_SECRET = "another-secret"

    assert sessions.verify_reference(reference) is None


def test_tampered_reference_is_rejected():
    reference = sessions.build_reference(42)
    tampered = reference.replace("00000042", "00000043")

    assert sessions.verify_reference(tampered) is None


def test_parse_reference_from_bank_content():
    reference = sessions.build_reference(7)
    content = f"MBVCB.123 chuyen tien {reference[:9]} {reference[9:].lower()} thanh toan"

    assert sessions.parse_reference(content) == reference
    assert sessions.parse_reference("thanh toan tien phong") is None
    assert sessions.parse_reference("") is None


def test_qr_payload_carries_amount_and_reference(settings):
    settings.VIETQR_IMAGE_URL = "https://img.vietqr.io/image/"
    account = BankAccount(bank_bin="970422", bank_name="MB", account_number="0123", account_name="HOMESTAY")

    url = build_qr_payload(amount=655000, reference="BOOKING00000001ABCD", account=account)

    parsed = urlparse(url)
    assert parsed.path == "/image/970422-0123-compact2.png"
    query = parse_qs(parsed.query)
    assert query["amount"] == ["655000"]
    assert query["addInfo"] == ["BOOKING00000001ABCD"]
    assert query["accountName"] == ["HOMESTAY"]


@pytest.mark.django_db
def test_create_session_fixes_amount_and_expiry(make_booking):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)

    session = sessions.create_session(booking.pk, now=now)

    assert session.amount == booking.total_amount
    assert session.expires_at == now + timedelta(minutes=15)
    assert session.reference == sessions.build_reference(booking.pk)
    booking.refresh_from_db()
    assert booking.payment_reference == session.reference


@pytest.mark.django_db
def test_create_session_returns_active_session(make_booking):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)
    first = sessions.create_session(booking.pk, now=now)

    second = sessions.create_session(booking.pk, now=now + timedelta(minutes=5))

    assert second.pk == first.pk
    assert second.expires_at == first.expires_at
    assert PaymentSession.objects.filter(booking=booking).count() == 1


@pytest.mark.django_db
def test_create_session_requires_pending_payment(make_booking):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)

    with pytest.raises(StateConflictError):
        sessions.create_session(booking.pk)


@pytest.mark.django_db
def test_create_session_fails_when_bank_account_is_missing(settings, make_booking):
    settings.BANK_ACCOUNT_NUMBER = ""
    booking = make_booking()

    with pytest.raises(ExternalDependencyError):
        sessions.create_session(booking.pk)
    assert not PaymentSession.objects.filter(booking=booking).exists()


@pytest.mark.django_db
def test_status_is_evaluated_lazily(make_booking):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)
    session = sessions.create_session(booking.pk, now=now)

    assert sessions.get_status(booking.pk, now=now) == sessions.STATUS_PENDING
    assert sessions.get_status(booking.pk, now=session.expires_at) == sessions.STATUS_PENDING
    assert sessions.get_status(booking.pk, now=session.expires_at + timedelta(seconds=1)) == sessions.STATUS_EXPIRED


@pytest.mark.django_db
def test_status_reports_completed_and_cancelled(make_booking):
    paid = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)
    cancelled = make_booking(check_in=paid.check_out_date + timedelta(days=3), status=Booking.CANCELLED)

    assert sessions.get_status(paid.pk) == sessions.STATUS_COMPLETED
    assert sessions.get_status(cancelled.pk) == sessions.STATUS_CANCELLED


@pytest.mark.django_db
def test_status_without_session_is_not_found(make_booking):
    booking = make_booking()

    with pytest.raises(NotFoundError):
        sessions.get_status(booking.pk)
    with pytest.raises(NotFoundError):
        sessions.get_status(999999)


@pytest.mark.django_db
def test_regenerate_while_active_is_a_no_op(make_booking):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)
    session = sessions.create_session(booking.pk, now=now)

    again = sessions.regenerate(booking.pk, now=now + timedelta(minutes=1))

    assert again.expires_at == session.expires_at
    assert again.regeneration_count == 0


@pytest.mark.django_db
def test_regenerate_after_expiry_keeps_reference(make_booking):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)
    session = sessions.create_session(booking.pk, now=now)
    later = now + timedelta(minutes=20)

    renewed = sessions.regenerate(booking.pk, now=later)

    assert renewed.pk == session.pk
    assert renewed.reference == session.reference
    assert renewed.expires_at == later + timedelta(minutes=15)
    assert renewed.regeneration_count == 1
    assert sessions.get_status(booking.pk, now=later) == sessions.STATUS_PENDING


@pytest.mark.django_db
def test_regenerate_without_session_issues_one(make_booking):
    booking = make_booking()

    session = sessions.regenerate(booking.pk)

    assert session.reference == sessions.build_reference(booking.pk)
