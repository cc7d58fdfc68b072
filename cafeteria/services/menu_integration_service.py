"""
菜单-订单集成服务
支付编排器调用的外部订单服务：校验 + 保存订单 + 创建支付

对编排器表现为异步 RPC：
- query_orders(user_id, week_start, statuses) -> List[ExistingOrder]
- submit_order(user, week_start, line_items) -> SubmitResult
校验失败、重复支付、支付网关失败都以 success=False 的结果返回，不抛异常。
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool

from ..config.settings import settings
from ..core.exceptions import BaseApplicationError, ValidationError
from ..models.order import ExistingOrder, LineItem, OrderStatus, PaymentRequest, SubmitResult
from ..models.user import User
from .menu_service import MenuService
from .order_service import OrderService
from .order_summary import order_total
from .payment_gateway import PaymentGateway
from .week_partitioner import week_dates, week_start_for

logger = logging.getLogger(__name__)


class MenuIntegrationService:
    """订单提交的最终权威：写入时再次校验"""

    def __init__(self, order_service: OrderService, menu_service: MenuService,
                 gateway: PaymentGateway,
                 clock: Optional[Callable[[], datetime]] = None):
        self.orders = order_service
        self.menus = menu_service
        self.gateway = gateway
        self.clock = clock or datetime.now

    async def query_orders(self, user_id: int, week_start: Optional[str] = None,
                           statuses: Optional[Iterable[OrderStatus]] = None) -> List[ExistingOrder]:
        return self.orders.query_orders(user_id=user_id, week_start=week_start, statuses=statuses)

    async def submit_order(self, user: User, week_start: str,
                           line_items: List[LineItem]) -> SubmitResult:
        """
        提交一周的订单并创建支付

        Returns:
            SubmitResult: 成功时带 order_id 和 payment_url
        """
        error = self._validate(user, week_start, line_items)
        if error:
            logger.info("Order for user %s week %s rejected: %s", user.id, week_start, error)
            return SubmitResult(success=False, error=error)

        try:
            order_id = self.orders.save_order(user, week_start, line_items)
        except BaseApplicationError as e:
            return SubmitResult(success=False, error=e.message)

        total = order_total(line_items)
        week = self.menus.resolve_week(week_start, self.clock())
        request = PaymentRequest(
            order_id=order_id,
            amount=total,
            currency=settings.payment_currency,
            description=f"School cafeteria order - {week.label}",
            customer_email=user.email,
            customer_name=user.display_name(),
            success_url=settings.payment_success_url.format(order_id=order_id),
            cancel_url=settings.payment_cancel_url.format(order_id=order_id),
        )
        # 网关是阻塞的网络调用，放到线程池里执行
        response = await run_in_threadpool(self.gateway.create_payment, request)

        if not response.success:
            # 订单保持 pending，可以重新发起支付
            return SubmitResult(success=False, order_id=order_id,
                                error=response.error or "Payment could not be created")

        if response.payment_id:
            self.orders.set_payment_id(order_id, response.payment_id)
        return SubmitResult(success=True, order_id=order_id, payment_url=response.redirect_url)

    async def confirm_payment(self, order_id: int, payment_id: Optional[str] = None) -> ExistingOrder:
        """
        支付返回/回调：向网关确认后标记为已支付

        Raises:
            ValidationError: 网关未确认支付时
        """
        order = self.orders.get_order(order_id)
        reference = payment_id or order.payment_id
        if not reference:
            raise ValidationError(f"Order {order_id} has no payment reference", "PAYMENT_NOT_CONFIRMED")
        if order.payment_id and payment_id and payment_id != order.payment_id:
            raise ValidationError("Payment reference does not match the order", "PAYMENT_NOT_CONFIRMED")
        if not await run_in_threadpool(self.gateway.verify_payment, reference):
            raise ValidationError(f"Payment for order {order_id} is not confirmed", "PAYMENT_NOT_CONFIRMED")
        return self.orders.mark_order_paid(order_id, reference)

    def _validate(self, user: User, week_start: str, line_items: List[LineItem]) -> Optional[str]:
        if not user.email:
            return "User email is required to process the payment"
        if not line_items:
            return "There are no selections to process"

        beneficiaries = {b.key for b in user.beneficiaries()}
        if not beneficiaries:
            return "Register at least one dependent before ordering"

        try:
            start = week_start_for(week_start)
        except BaseApplicationError as e:
            return e.message
        if not self.menus.resolve_week(start, self.clock()).is_ordering_allowed:
            return f"Ordering for the week of {start} is closed"

        dates = set(week_dates(start))
        for item in line_items:
            if item.date not in dates:
                return f"{item.date} does not belong to the week of {start}"
            if item.beneficiary_key not in beneficiaries:
                return f"{item.beneficiary_name} is not registered on this account"

        if order_total(line_items) <= 0:
            return "The order total must be greater than zero"
        return None
