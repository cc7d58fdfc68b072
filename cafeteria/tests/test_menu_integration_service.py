"""
菜单-订单集成服务测试
提交订单、服务端复核、支付确认
"""

import asyncio
import threading

import pytest

from ..core.exceptions import ValidationError
from ..models.base import Category, UserType
from ..models.order import LineItem, OrderStatus
from ..models.user import UserCreate


def _line(date, key="child-1", category=Category.LUNCH, price=5500):
    return LineItem(date=date, beneficiary_key=key, beneficiary_name=key, category=category,
                    item_id="1", item_code="L1", item_name="Pasta", price=price)


class TestSubmitOrder:
    """submit_order 测试"""

    def test_success_returns_payment_url(self, integration, order_service, gateway, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [
            _line("2024-03-04"), _line("2024-03-05", category=Category.SNACK, price=2000),
        ]))

        assert result.success
        assert result.payment_url == f"https://checkout.example/cs_test_{result.order_id}"
        order = order_service.get_order(result.order_id)
        assert order.status == OrderStatus.PENDING
        assert order.payment_id == f"cs_test_{result.order_id}"

        request = gateway.requests[0]
        assert request.amount == 7500
        assert request.currency == "clp"
        assert request.customer_email == guardian.email
        assert request.customer_name == "Ana Parent"
        assert request.success_url.endswith(f"order={result.order_id}")

    def test_rejects_foreign_beneficiary(self, integration, guardian, gateway):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04", "child-99")]))

        assert not result.success
        assert "not registered" in result.error
        assert gateway.requests == []

    def test_guardian_without_dependents(self, integration, user_service):
        lonely = user_service.create_user(UserCreate(
            email="new.parent@example.com", user_type=UserType.GUARDIAN,
        ))
        result = asyncio.run(integration.submit_order(lonely, "2024-03-04", [_line("2024-03-04")]))

        assert not result.success
        assert "dependent" in result.error

    def test_rejects_date_outside_week(self, integration, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-11")]))
        assert not result.success
        assert "does not belong" in result.error

    def test_rejects_zero_total(self, integration, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04", price=0)]))
        assert not result.success

    def test_rejects_empty_order(self, integration, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", []))
        assert not result.success

    def test_rejects_closed_week(self, integration, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-02-26", [_line("2024-02-27")]))
        assert not result.success
        assert "closed" in result.error

    def test_staff_orders_for_self(self, integration, staff):
        result = asyncio.run(integration.submit_order(staff, "2024-03-04", [_line("2024-03-04", "self", price=4875)]))
        assert result.success

    def test_duplicate_paid_item_rejected_server_side(self, integration, order_service, guardian):
        first = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))
        order_service.mark_order_paid(first.order_id)

        second = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))

        assert not second.success
        assert "already paid" in second.error

    def test_gateway_failure_keeps_pending_order(self, integration, order_service, gateway, guardian):
        gateway.fail_with = "card network down"
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))

        assert not result.success
        assert result.error == "card network down"
        assert order_service.get_order(result.order_id).status == OrderStatus.PENDING

    def test_query_orders(self, integration, guardian):
        asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))
        orders = asyncio.run(integration.query_orders(guardian.id, "2024-03-04"))
        assert len(orders) == 1


class TestConfirmPayment:
    """confirm_payment 测试"""

    def test_confirm_marks_paid(self, integration, gateway, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))
        gateway.confirmed.add(f"cs_test_{result.order_id}")

        order = asyncio.run(integration.confirm_payment(result.order_id))

        assert order.status == OrderStatus.PAID
        assert order.paid_at is not None

    def test_unconfirmed_payment_rejected(self, integration, order_service, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))

        with pytest.raises(ValidationError) as exc:
            asyncio.run(integration.confirm_payment(result.order_id))
        assert exc.value.error_code == "PAYMENT_NOT_CONFIRMED"
        assert order_service.get_order(result.order_id).status == OrderStatus.PENDING

    def test_mismatched_reference_rejected(self, integration, gateway, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))
        gateway.confirmed.add("cs_someone_else")

        with pytest.raises(ValidationError):
            asyncio.run(integration.confirm_payment(result.order_id, "cs_someone_else"))


class TestGatewayCalls:
    """支付网关调用不占用事件循环"""

    def test_gateway_runs_off_the_event_loop_thread(self, integration, gateway, guardian):
        result = asyncio.run(integration.submit_order(guardian, "2024-03-04", [_line("2024-03-04")]))
        gateway.confirmed.add(f"cs_test_{result.order_id}")
        asyncio.run(integration.confirm_payment(result.order_id))

        assert len(gateway.threads) == 2
        assert threading.get_ident() not in gateway.threads
