from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from bookings.models import Booking
from bookings.services import bookings as booking_services
from core.exceptions import (
    ExternalDependencyError,
    NotFoundError,
    PolicyViolationError,
    StateConflictError,
    ValidationError,
)
from homestays.models import Homestay


@pytest.mark.django_db
def test_create_booking_prices_the_stay(guest, homestay):
    check_in = timezone.localdate() + timedelta(days=14)
    booking = booking_services.create_booking(
        guest=guest,
        homestay_id=homestay.pk,
        check_in_date=check_in,
        check_out_date=check_in + timedelta(days=2),
        number_of_guests=2,
        guest_details={"first_name": " Greta ", "email": "GRETA@Example.com"},
    )

    assert booking.number_of_nights == 2
    assert booking.total_amount == 950000 * 2 + 50000
    assert booking.host_amount + booking.platform_commission == booking.total_amount
    assert booking.host == homestay.host
    assert booking.status == Booking.PENDING
    assert booking.payment_status == Booking.PAYMENT_PENDING
    assert booking.guest_details["first_name"] == "Greta"
    assert booking.guest_details["email"] == "greta@example.com"


@pytest.mark.django_db
def test_create_booking_collects_validation_errors(guest, homestay):
    yesterday = timezone.localdate() - timedelta(days=1)
    with pytest.raises(ValidationError) as excinfo:
        booking_services.create_booking(
            guest=guest,
            homestay_id=homestay.pk,
            check_in_date=yesterday,
            check_out_date=yesterday,
            number_of_guests=10,
        )

    assert set(excinfo.value.details) == {"check_in_date", "check_out_date", "number_of_guests"}


@pytest.mark.django_db
def test_create_booking_rejects_inactive_homestay(guest, homestay):
    homestay.status = Homestay.INACTIVE
    homestay.save()
    check_in = timezone.localdate() + timedelta(days=3)

    with pytest.raises(ValidationError) as excinfo:
        booking_services.create_booking(
            guest=guest,
            homestay_id=homestay.pk,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=1),
        )
    assert "homestay_id" in excinfo.value.details


@pytest.mark.django_db
def test_create_booking_rejects_overlapping_dates(guest, homestay, make_booking):
    existing = make_booking(nights=3)

    with pytest.raises(ValidationError):
        booking_services.create_booking(
            guest=guest,
            homestay_id=homestay.pk,
            check_in_date=existing.check_in_date + timedelta(days=1),
            check_out_date=existing.check_out_date + timedelta(days=1),
        )


@pytest.mark.django_db
def test_create_booking_ignores_cancelled_bookings_when_checking_dates(guest, homestay, make_booking):
    existing = make_booking(nights=3, status=Booking.CANCELLED)

    booking = booking_services.create_booking(
        guest=guest,
        homestay_id=homestay.pk,
        check_in_date=existing.check_in_date,
        check_out_date=existing.check_out_date,
    )
    assert booking.pk != existing.pk


@pytest.mark.django_db
def test_create_booking_unknown_homestay(guest):
    check_in = timezone.localdate() + timedelta(days=3)
    with pytest.raises(NotFoundError):
        booking_services.create_booking(
            guest=guest,
            homestay_id=999999,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=1),
        )


@pytest.mark.django_db
def test_payment_transition_confirms_and_records_verification(make_booking, admin_user):
    booking = make_booking()

    updated, changed = booking_services.transition_payment_completed(
        booking.pk,
        "FT123",
        amount=999000,
        method=Booking.VERIFICATION_MANUAL,
        verified_by=admin_user,
        notes="Checked the statement",
    )

    assert changed is True
    assert updated.status == Booking.CONFIRMED
    assert updated.payment_status == Booking.PAYMENT_COMPLETED
    assert updated.payment_transaction_id == "FT123"
    assert updated.paid_amount == 999000
    assert updated.verified_by == admin_user
    assert updated.verification_notes == "Checked the statement"
    assert updated.host_payout_amount == updated.host_amount


@pytest.mark.django_db
def test_payment_transition_is_idempotent(make_booking):
    booking = make_booking()
    booking_services.transition_payment_completed(booking.pk, "FT1")

    again, changed = booking_services.transition_payment_completed(booking.pk, "FT2")

    assert changed is False
    assert again.payment_transaction_id == "FT1"


@pytest.mark.django_db
def test_payment_transition_rejects_cancelled_booking(make_booking):
    booking = make_booking(status=Booking.CANCELLED)
    with pytest.raises(StateConflictError):
        booking_services.transition_payment_completed(booking.pk, "FT1")


@pytest.mark.django_db
def test_payment_confirmation_email_is_sent_after_commit(make_booking, django_capture_on_commit_callbacks):
    booking = make_booking()
    with django_capture_on_commit_callbacks(execute=True):
        booking_services.transition_payment_completed(booking.pk, "FT1")

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ["guest@example.com"]
    assert "Payment received" in mail.outbox[0].subject


@pytest.mark.django_db
def test_cancel_unpaid_booking_needs_no_refund(make_booking, guest):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)

    cancelled = booking_services.cancel_booking(booking.pk, actor=guest, reason="Plans changed", now=now)

    assert cancelled.status == Booking.CANCELLED
    assert cancelled.cancelled_by == guest
    assert cancelled.refund_amount == 0
    assert cancelled.refund_status == Booking.REFUND_NOT_REQUIRED
    assert cancelled.refund_snapshot["policy"] == "full"
    assert len(mail.outbox) == 1


@pytest.mark.django_db
def test_cancel_paid_booking_far_out_refunds_all_but_fee(make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)
    now = booking.check_in_at - timedelta(days=10)

    cancelled = booking_services.cancel_booking(booking.pk, actor=guest, now=now)

    assert cancelled.refund_amount == 950000
    assert cancelled.refund_snapshot["refund_percentage"] == 100
    assert cancelled.refund_status == Booking.PAYOUT_COMPLETED
    assert cancelled.refund_reference.startswith("po_test_")
    assert cancelled.payment_status == Booking.PAYMENT_PARTIALLY_REFUNDED


@pytest.mark.django_db
def test_cancel_paid_booking_five_days_out_refunds_half(make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)
    now = booking.check_in_at - timedelta(days=5)

    cancelled = booking_services.cancel_booking(booking.pk, actor=guest, now=now)

    assert cancelled.refund_amount == 500000
    assert cancelled.refund_snapshot["policy"] == "partial"


@pytest.mark.django_db
def test_cancel_inside_lockout_is_rejected_without_changes(make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)
    now = booking.check_in_at - timedelta(days=1)

    with pytest.raises(PolicyViolationError):
        booking_services.cancel_booking(booking.pk, actor=guest, now=now)

    booking.refresh_from_db()
    assert booking.status == Booking.CONFIRMED
    assert booking.refund_snapshot is None
    assert booking.refund_amount is None


@pytest.mark.django_db
def test_cancel_twice_conflicts(make_booking, guest):
    booking = make_booking()
    now = booking.check_in_at - timedelta(days=10)
    booking_services.cancel_booking(booking.pk, actor=guest, now=now)

    with pytest.raises(StateConflictError):
        booking_services.cancel_booking(booking.pk, actor=guest, now=now)


@pytest.mark.django_db
def test_refund_failure_keeps_the_cancellation(monkeypatch, make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)

    def fail(*args, **kwargs):
        raise ExternalDependencyError("bank offline")

    monkeypatch.setattr(booking_services, "disburse_guest_refund", fail)
    cancelled = booking_services.cancel_booking(booking.pk, actor=guest, now=booking.check_in_at - timedelta(days=10))

    cancelled.refresh_from_db()
    assert cancelled.status == Booking.CANCELLED
    assert cancelled.refund_status == Booking.PAYOUT_FAILED
    assert cancelled.refund_amount == 950000

    monkeypatch.undo()
    retried = booking_services.retry_refund(booking.pk)
    assert retried.refund_status == Booking.PAYOUT_COMPLETED


@pytest.mark.django_db
def test_retry_refund_requires_failed_refund(make_booking):
    booking = make_booking()
    with pytest.raises(StateConflictError):
        booking_services.retry_refund(booking.pk)


@pytest.fixture
def finished_stay(make_booking):
    return make_booking(
        check_in=timezone.localdate() - timedelta(days=3),
        status=Booking.CONFIRMED,
        payment_status=Booking.PAYMENT_COMPLETED,
    )


@pytest.mark.django_db
def test_host_payout_requires_completed_payment(make_booking):
    booking = make_booking()
    with pytest.raises(StateConflictError):
        booking_services.process_host_payout(booking.pk)


@pytest.mark.django_db
def test_host_payout_pays_host_share_once(finished_stay):
    booking = finished_stay

    paid = booking_services.process_host_payout(booking.pk)

    assert paid.host_payout_status == Booking.PAYOUT_COMPLETED
    assert paid.host_payout_amount == 900000
    assert paid.host_payout_reference.startswith("tr_test_")
    reference = paid.host_payout_reference

    again = booking_services.process_host_payout(booking.pk)
    assert again.host_payout_reference == reference


@pytest.mark.django_db
def test_host_payout_failure_is_recorded(monkeypatch, finished_stay):
    booking = finished_stay

    def fail(*args, **kwargs):
        raise ExternalDependencyError("transfer rejected")

    monkeypatch.setattr(booking_services, "send_host_payout", fail)
    with pytest.raises(ExternalDependencyError):
        booking_services.process_host_payout(booking.pk)

    booking.refresh_from_db()
    assert booking.host_payout_status == Booking.PAYOUT_FAILED


@pytest.mark.django_db
def test_get_booking_unknown_id():
    with pytest.raises(NotFoundError):
        booking_services.get_booking(424242)


@pytest.mark.django_db
def test_host_payout_waits_for_check_out(make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)

    with pytest.raises(StateConflictError):
        booking_services.process_host_payout(booking.pk)

    booking.refresh_from_db()
    assert booking.host_payout_status == Booking.PAYOUT_PENDING
    assert booking.host_payout_reference == ""

    cancelled = booking_services.cancel_booking(booking.pk, actor=guest, now=booking.check_in_at - timedelta(days=10))

    assert cancelled.refund_amount == 950000
    assert cancelled.host_payout_reference == ""
    assert cancelled.refund_amount <= cancelled.total_amount


@pytest.mark.django_db
def test_host_payout_rejects_cancelled_booking(make_booking):
    booking = make_booking(
        check_in=timezone.localdate() - timedelta(days=3),
        status=Booking.CANCELLED,
        payment_status=Booking.PAYMENT_COMPLETED,
    )

    with pytest.raises(StateConflictError):
        booking_services.process_host_payout(booking.pk)


@pytest.mark.django_db
def test_unexpected_refund_error_marks_refund_failed(monkeypatch, make_booking, guest):
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)

    def broken(*args, **kwargs):
        raise AttributeError("module 'stripe' has no attribute 'Payout'")

    monkeypatch.setattr(booking_services, "disburse_guest_refund", broken)
    with pytest.raises(AttributeError):
        booking_services.cancel_booking(booking.pk, actor=guest, now=booking.check_in_at - timedelta(days=10))

    booking.refresh_from_db()
    assert booking.status == Booking.CANCELLED
    assert booking.refund_status == Booking.PAYOUT_FAILED
