from datetime import timedelta
from io import StringIO

import pytest
from django.core import mail
from django.core.management import call_command
from django.utils import timezone

from bookings.models import Booking
from bookings.services.bookings import transition_payment_completed
from payments.models import PaymentSession
from payments.services import reminders, sessions


@pytest.fixture
def expired_session(make_booking):
    booking = make_booking()
    return sessions.create_session(booking.pk, now=timezone.now() - timedelta(hours=1))


@pytest.mark.django_db
def test_expired_unpaid_session_gets_one_reminder(expired_session):
    result = reminders.send_payment_reminders()

    assert result == {"due": 1, "sent": 1, "failed": 0}
    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["guest@example.com"]
    assert "Complete your payment" in message.subject
    assert expired_session.reference in message.body

    expired_session.refresh_from_db()
    assert expired_session.reminder_sent_at is not None

    again = reminders.send_payment_reminders()
    assert again == {"due": 0, "sent": 0, "failed": 0}
    assert len(mail.outbox) == 1


@pytest.mark.django_db
def test_active_paid_and_cancelled_bookings_are_skipped(make_booking):
    now = timezone.now()
    active = make_booking()
    sessions.create_session(active.pk, now=now)

    paid = make_booking(check_in=timezone.localdate() + timedelta(days=20))
    sessions.create_session(paid.pk, now=now - timedelta(hours=1))
    transition_payment_completed(paid.pk, "FT777")

    cancelled = make_booking(check_in=timezone.localdate() + timedelta(days=30))
    sessions.create_session(cancelled.pk, now=now - timedelta(hours=1))
    Booking.objects.filter(pk=cancelled.pk).update(status=Booking.CANCELLED)

    assert reminders.due_reminders(now) == []
    assert reminders.send_payment_reminders(now)["sent"] == 0
    assert mail.outbox == []


@pytest.mark.django_db
def test_regenerated_session_is_reminded_again_after_it_expires(expired_session):
    reminders.send_payment_reminders()
    now = timezone.now()

    session = sessions.regenerate(expired_session.booking_id, now=now)
    assert session.reminder_sent_at is None
    assert reminders.due_reminders(now) == []

    later = now + timedelta(minutes=30)
    result = reminders.send_payment_reminders(later)

    assert result["sent"] == 1
    assert len(mail.outbox) == 2


@pytest.mark.django_db
def test_failed_reminder_is_retried_next_run(monkeypatch, expired_session):
    monkeypatch.setattr(reminders, "send_payment_reminder_email", lambda booking, session: False)

    result = reminders.send_payment_reminders()

    assert result == {"due": 1, "sent": 0, "failed": 1}
    expired_session.refresh_from_db()
    assert expired_session.reminder_sent_at is None

    monkeypatch.undo()
    assert reminders.send_payment_reminders()["sent"] == 1


@pytest.mark.django_db
def test_reminder_endpoint_reports_and_sends(api_client, admin_user, expired_session):
    api_client.force_authenticate(user=admin_user)

    status_response = api_client.get("/api/admin/payment-reminders/")
    assert status_response.status_code == 200
    assert status_response.json()["data"] == {"due": 1}

    trigger_response = api_client.post("/api/admin/payment-reminders/")
    assert trigger_response.status_code == 200
    assert trigger_response.json()["data"] == {"due": 1, "sent": 1, "failed": 0}
    assert PaymentSession.objects.get(pk=expired_session.pk).reminder_sent_at is not None


@pytest.mark.django_db
def test_reminder_endpoint_is_admin_only(api_client, guest, expired_session):
    api_client.force_authenticate(user=guest)

    response = api_client.post("/api/admin/payment-reminders/")

    assert response.status_code == 403
    assert mail.outbox == []


@pytest.mark.django_db
def test_send_payment_reminders_command(expired_session):
    out = StringIO()

    call_command("send_payment_reminders", stdout=out)

    assert "sent: 1" in out.getvalue()
    assert len(mail.outbox) == 1
