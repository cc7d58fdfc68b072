"""
Stripe Checkout 网关测试
Session.create / Session.retrieve 用 monkeypatch 替换，不访问网络
"""

import stripe

from ..models.order import PaymentRequest
from ..services.payment_gateway import StripeCheckoutGateway


def _request(**overrides) -> PaymentRequest:
    data = dict(
        order_id=7,
        amount=7500,
        currency="clp",
        description="School cafeteria order - week of 2024-03-04",
        customer_email="ana.parent@example.com",
        customer_name="Ana Parent",
        success_url="https://school.example/pay/success?order=7",
        cancel_url="https://school.example/pay/cancel?order=7",
    )
    data.update(overrides)
    return PaymentRequest(**data)


def _session(**values):
    return stripe.checkout.Session.construct_from(values, "sk_test_key")


class TestStripeCheckoutGateway:
    """StripeCheckoutGateway 测试"""

    def test_create_payment(self, monkeypatch):
        calls = []

        def fake_create(**kwargs):
            calls.append(kwargs)
            return _session(id="cs_test_7", url="https://checkout.stripe.com/c/cs_test_7")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        response = StripeCheckoutGateway("sk_test_key").create_payment(_request())

        assert response.success
        assert response.payment_id == "cs_test_7"
        assert response.redirect_url == "https://checkout.stripe.com/c/cs_test_7"

        params = calls[0]
        assert params["mode"] == "payment"
        assert params["metadata"] == {"order_id": "7"}
        assert params["line_items"][0]["price_data"]["unit_amount"] == 7500
        assert params["line_items"][0]["price_data"]["currency"] == "clp"
        assert params["customer_email"] == "ana.parent@example.com"

    def test_create_payment_stripe_error(self, monkeypatch):
        def fake_create(**kwargs):
            raise stripe.StripeError("Your card was declined.")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        response = StripeCheckoutGateway("sk_test_key").create_payment(_request())

        assert not response.success
        assert "declined" in response.error

    def test_verify_paid_session(self, monkeypatch):
        monkeypatch.setattr(stripe.checkout.Session, "retrieve",
                            lambda payment_id: _session(id=payment_id, payment_status="paid"))
        assert StripeCheckoutGateway("sk_test_key").verify_payment("cs_test_7") is True

    def test_verify_unpaid_session(self, monkeypatch):
        monkeypatch.setattr(stripe.checkout.Session, "retrieve",
                            lambda payment_id: _session(id=payment_id, payment_status="unpaid"))
        assert StripeCheckoutGateway("sk_test_key").verify_payment("cs_test_7") is False

    def test_verify_lookup_error(self, monkeypatch):
        def fake_retrieve(payment_id):
            raise stripe.StripeError("No such checkout.session")

        monkeypatch.setattr(stripe.checkout.Session, "retrieve", fake_retrieve)
        assert StripeCheckoutGateway("sk_test_key").verify_payment("cs_missing") is False
