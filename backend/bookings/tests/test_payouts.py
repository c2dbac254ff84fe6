import types

import pytest
import stripe

from bookings.models import Booking
from bookings.services import payouts
from core.exceptions import ExternalDependencyError


@pytest.fixture
def paid_booking(make_booking, host):
    host.payout_account_id = "acct_host_123"
    host.save()
    return make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)


@pytest.mark.django_db
def test_host_payout_stub_returns_predictable_transfer(settings, paid_booking):
    settings.STRIPE_USE_STUB = True
    settings.STRIPE_SECRET_KEY = ""

    transfer = payouts.send_host_payout(paid_booking)

    assert isinstance(transfer, payouts.TransferStub)
    assert transfer.id.startswith("tr_test_")
    assert transfer.amount == paid_booking.host_amount


@pytest.mark.django_db
def test_missing_key_falls_back_to_stub(settings, paid_booking):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = ""

    refund = payouts.disburse_guest_refund(paid_booking, 500000)

    assert refund.id.startswith("po_test_")
    assert refund.amount == 500000


@pytest.mark.django_db
def test_host_payout_uses_stripe_when_configured(monkeypatch, settings, paid_booking):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.PAYOUT_CURRENCY = "vnd"

    captured = {}
    original_api_key = stripe.api_key

    def fake_create(**kwargs):
        captured["kwargs"] = kwargs
        return types.SimpleNamespace(id="tr_real_123", amount=kwargs["amount"], currency=kwargs["currency"])

    monkeypatch.setattr(stripe.Transfer, "create", staticmethod(fake_create))

    try:
        transfer = payouts.send_host_payout(paid_booking)
        assert transfer.id == "tr_real_123"
        assert stripe.api_key == "sk_test_123"
        kwargs = captured["kwargs"]
        assert kwargs["destination"] == "acct_host_123"
        assert kwargs["amount"] == paid_booking.host_amount
        assert kwargs["metadata"]["booking_id"] == paid_booking.pk
    finally:
        stripe.api_key = original_api_key


@pytest.mark.django_db
def test_stripe_errors_become_external_dependency_errors(monkeypatch, settings, paid_booking):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    original_api_key = stripe.api_key

    def fake_create(**kwargs):
        raise stripe.StripeError("insufficient balance")

    monkeypatch.setattr(stripe.Payout, "create", staticmethod(fake_create))

    try:
        with pytest.raises(ExternalDependencyError):
            payouts.disburse_guest_refund(paid_booking, 1000)
    finally:
        stripe.api_key = original_api_key


@pytest.mark.django_db
def test_host_without_payout_account_cannot_be_paid(settings, make_booking):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    booking = make_booking(status=Booking.CONFIRMED, payment_status=Booking.PAYMENT_COMPLETED)

    with pytest.raises(ExternalDependencyError):
        payouts.send_host_payout(booking)
