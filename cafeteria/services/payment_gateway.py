"""
支付网关
订单服务只依赖 PaymentGateway 接口；生产环境使用 Stripe Checkout
"""

import logging
from typing import Optional

import stripe

from ..config.settings import settings
from ..models.order import PaymentRequest, PaymentResponse

logger = logging.getLogger(__name__)


class PaymentGateway:
    """支付网关接口"""

    def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        raise NotImplementedError

    def verify_payment(self, payment_id: str) -> bool:
        raise NotImplementedError


class StripeCheckoutGateway(PaymentGateway):
    """
    Stripe Checkout 会话

    金额按零小数货币（CLP）传入；订单ID放在 metadata 中，便于支付回调对账
    """

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.stripe_secret_key

    def _client(self):
        if self.api_key:
            stripe.api_key = self.api_key
        return stripe

    def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        try:
            session = self._client().checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": request.currency,
                        "unit_amount": request.amount,
                        "product_data": {"name": request.description},
                    },
                    "quantity": 1,
                }],
                customer_email=request.customer_email,
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                metadata={"order_id": str(request.order_id)},
                payment_method_types=["card"],
            )
        except stripe.StripeError as e:
            logger.warning("Stripe session creation failed for order %s: %s", request.order_id, e)
            return PaymentResponse(success=False, error=getattr(e, "user_message", None) or str(e))

        return PaymentResponse(success=True, payment_id=session.id, redirect_url=session.url)

    def verify_payment(self, payment_id: str) -> bool:
        """会话的 payment_status 为 paid 时视为支付成功"""
        try:
            session = self._client().checkout.Session.retrieve(payment_id)
        except stripe.StripeError as e:
            logger.warning("Stripe session lookup failed for %s: %s", payment_id, e)
            return False
        return session.payment_status == "paid"
