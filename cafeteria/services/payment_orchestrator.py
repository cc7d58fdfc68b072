"""
支付编排
把会话中的选餐按周拆分、查重、逐周提交给订单服务，并在第一个支付链接处跳转

状态：idle -> validating -> submitting -> redirecting | completed | failed

- 校验阶段：没有选餐直接失败，不调用任何外部服务；每周重新查询已支付订单做重复检测。
  默认任意一周有重复就整体失败；block_all_weeks_on_conflict=False 时只跳过有重复的周
- 提交阶段：按周的插入顺序逐个 await，某周抛异常或返回失败只记录，不影响其它周
- 第一个带 payment_url 的成功结果立即进入 redirecting，剩余的周本次不提交
- 不自动重试；retry() 只能在 failed 之后调用，从校验阶段完整重来
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..config.settings import settings
from ..core.exceptions import (
    BaseApplicationError,
    DuplicatePaymentError,
    EmptySelectionError,
    PaymentStateError,
    PaymentSubmissionError,
)
from ..models.order import OrderStatus
from ..models.selection import Selection
from .duplicate_detector import detect_conflicts
from .menu_integration_service import MenuIntegrationService
from .order_summary import to_line_items
from .session import OrderSession
from .week_partitioner import partition_by_week

logger = logging.getLogger(__name__)


class PaymentState(str, Enum):
    """一次支付尝试的状态"""
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    REDIRECTING = "redirecting"
    COMPLETED = "completed"
    FAILED = "failed"


class WeekSubmission(BaseModel):
    """单周的提交结果"""
    week_start: str
    success: bool
    order_id: Optional[int] = None
    payment_url: Optional[str] = None
    error: Optional[str] = None


class PaymentOutcome(BaseModel):
    """支付尝试的结果，所有失败都以这种形式返回给调用方"""
    state: PaymentState
    redirect_url: Optional[str] = None
    results: List[WeekSubmission] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    skipped_weeks: List[str] = Field(default_factory=list)
    error_code: Optional[str] = None
    message: Optional[str] = None


class PaymentOrchestrator:
    """单个会话的支付流程"""

    def __init__(self, session: OrderSession, integration: MenuIntegrationService,
                 block_all_weeks_on_conflict: Optional[bool] = None):
        self.session = session
        self.integration = integration
        if block_all_weeks_on_conflict is None:
            block_all_weeks_on_conflict = settings.block_all_weeks_on_conflict
        self.block_all = block_all_weeks_on_conflict
        self.state = PaymentState.IDLE
        self.last_outcome: Optional[PaymentOutcome] = None

    async def process_payment(self) -> PaymentOutcome:
        if self.state in (PaymentState.VALIDATING, PaymentState.SUBMITTING):
            raise PaymentStateError(f"A payment attempt is already {self.state.value}")
        return await self._attempt()

    async def retry(self) -> PaymentOutcome:
        """从失败状态重新开始，不沿用上次的任何结果"""
        if self.state != PaymentState.FAILED:
            raise PaymentStateError(f"Cannot retry a payment that is {self.state.value}")
        return await self._attempt()

    async def _attempt(self) -> PaymentOutcome:
        conflicts: List[str] = []
        skipped: List[str] = []
        results: List[WeekSubmission] = []
        try:
            self.state = PaymentState.VALIDATING
            weeks = await self._validate(conflicts, skipped)

            self.state = PaymentState.SUBMITTING
            outcome = await self._submit(weeks, results)
        except BaseApplicationError as e:
            logger.info("Payment attempt for user %s failed: %s", self.session.user_id, e.message)
            outcome = PaymentOutcome(
                state=PaymentState.FAILED,
                results=results,
                error_code=e.error_code,
                message=e.message,
            )
        except Exception:
            logger.exception("Payment attempt for user %s raised while %s",
                             self.session.user_id, self.state.value)
            outcome = PaymentOutcome(
                state=PaymentState.FAILED,
                results=results,
                error_code="INTERNAL_ERROR",
                message="The payment could not be processed, please try again",
            )

        outcome.conflicts = conflicts
        outcome.skipped_weeks = skipped
        self.state = outcome.state
        self.last_outcome = outcome
        return outcome

    async def _validate(self, conflicts: List[str], skipped: List[str]) -> Dict[str, List[Selection]]:
        selections = self.session.store.all()
        if not selections:
            raise EmptySelectionError()

        weeks = partition_by_week(selections)
        blocked: Dict[str, List[str]] = {}
        for week_start, pending in weeks.items():
            paid = await self.integration.query_orders(
                self.session.user_id, week_start, statuses=[OrderStatus.PAID]
            )
            report = detect_conflicts(pending, paid)
            if report.has_conflict:
                blocked[week_start] = report.descriptions
                conflicts.extend(report.descriptions)

        if not blocked:
            return weeks
        if self.block_all or len(blocked) == len(weeks):
            raise DuplicatePaymentError(conflicts)

        skipped.extend(blocked)
        logger.info("Skipping weeks %s for user %s: already paid items",
                    ", ".join(blocked), self.session.user_id)
        return {ws: pending for ws, pending in weeks.items() if ws not in blocked}

    async def _submit(self, weeks: Dict[str, List[Selection]],
                      results: List[WeekSubmission]) -> PaymentOutcome:
        failures: Dict[str, str] = {}
        for week_start, pending in weeks.items():
            line_items = to_line_items(sorted(pending, key=lambda s: s.date))
            if not line_items:
                continue

            try:
                result = await self.integration.submit_order(self.session.user, week_start, line_items)
            except Exception as e:
                logger.exception("Order submission for week %s raised", week_start)
                result_entry = WeekSubmission(week_start=week_start, success=False, error=str(e))
            else:
                result_entry = WeekSubmission(
                    week_start=week_start,
                    success=result.success,
                    order_id=result.order_id,
                    payment_url=result.payment_url,
                    error=result.error,
                )
            results.append(result_entry)

            if not result_entry.success:
                failures[week_start] = result_entry.error or "Unknown error"
                continue

            self.session.store.remove_week(week_start)
            if result_entry.payment_url:
                return self._redirect(result_entry, results)

        if failures:
            raise PaymentSubmissionError(failures)
        if not results:
            raise EmptySelectionError()

        self._reset_if_empty()
        return PaymentOutcome(
            state=PaymentState.COMPLETED,
            results=results,
            message=f"Submitted {len(results)} order(s)",
        )

    def _redirect(self, entry: WeekSubmission, results: List[WeekSubmission]) -> PaymentOutcome:
        logger.info("Redirecting user %s to payment for week %s (order %s)",
                    self.session.user_id, entry.week_start, entry.order_id)
        self._reset_if_empty()
        return PaymentOutcome(
            state=PaymentState.REDIRECTING,
            redirect_url=entry.payment_url,
            results=results,
            message=f"Redirecting to payment for the week of {entry.week_start}",
        )

    def _reset_if_empty(self) -> None:
        if not len(self.session.store):
            self.session.reset()
