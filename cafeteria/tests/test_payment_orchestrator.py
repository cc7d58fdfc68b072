"""
支付编排测试
用 FakeIntegration 代替订单服务，检查状态流转、跳转规则和错误汇总
"""

import asyncio

import pytest

from ..core.exceptions import PaymentStateError
from ..models.base import UserType
from ..models.order import SubmitResult
from ..models.user import Dependent, User
from ..services.payment_orchestrator import PaymentOrchestrator, PaymentState
from ..services.selection_store import SelectionStore
from ..services.session import OrderSession
from .factories import LUNCH, FakeIntegration, make_selection, paid_order


def _session(*selections) -> OrderSession:
    user = User(
        id=1, email="ana.parent@example.com", name="Ana", user_type=UserType.GUARDIAN,
        dependents=[Dependent(id="child-1", name="Sofia")],
    )
    return OrderSession(user, SelectionStore(selections))


def _run(orchestrator, method="process_payment"):
    return asyncio.run(getattr(orchestrator, method)())


class TestPaymentOrchestrator:
    """PaymentOrchestrator 测试"""

    def test_empty_store_fails_without_external_calls(self):
        integration = FakeIntegration()
        orchestrator = PaymentOrchestrator(_session(), integration)
        outcome = _run(orchestrator)

        assert outcome.state == PaymentState.FAILED
        assert outcome.error_code == "EMPTY_SELECTION"
        assert integration.queries == []
        assert integration.submitted == []

    def test_stops_at_first_redirect(self):
        """第一周拿到支付链接后，第二周本次不提交"""
        session = _session(
            make_selection("2024-03-04", lunch=5000),
            make_selection("2024-03-11", lunch=5000),
        )
        integration = FakeIntegration()
        orchestrator = PaymentOrchestrator(session, integration)
        outcome = _run(orchestrator)

        assert outcome.state == PaymentState.REDIRECTING
        assert outcome.redirect_url == "https://checkout.example/2024-03-04"
        assert integration.submitted_weeks == ["2024-03-04"]
        assert [s.date for s in session.store.all()] == ["2024-03-11"]

    def test_session_reset_after_last_week_redirect(self):
        session = _session(make_selection("2024-03-04", lunch=5000, snack=2000))
        outcome = _run(PaymentOrchestrator(session, FakeIntegration()))

        assert outcome.state == PaymentState.REDIRECTING
        assert len(session.store) == 0

    def test_submits_line_items_grouped_lunch_first(self):
        session = _session(
            make_selection("2024-03-05", lunch=5000),
            make_selection("2024-03-04", lunch=5000, snack=2000),
        )
        integration = FakeIntegration()
        _run(PaymentOrchestrator(session, integration))

        _, line_items = integration.submitted[0]
        assert [(li.date, li.category.value) for li in line_items] == [
            ("2024-03-04", "lunch"), ("2024-03-04", "snack"), ("2024-03-05", "lunch"),
        ]

    def test_conflict_blocks_all_weeks(self):
        session = _session(
            make_selection("2024-03-04", lunch=5000),
            make_selection("2024-03-11", lunch=5000),
        )
        integration = FakeIntegration(paid={
            "2024-03-11": [paid_order("2024-03-11", [("2024-03-11", "child-1", LUNCH, "Pasta")])],
        })
        outcome = _run(PaymentOrchestrator(session, integration, block_all_weeks_on_conflict=True))

        assert outcome.state == PaymentState.FAILED
        assert outcome.error_code == "DUPLICATE_PAYMENT"
        assert "2024-03-11 - Sofia: lunch already paid (Pasta)" in outcome.message
        assert outcome.conflicts == ["2024-03-11 - Sofia: lunch already paid (Pasta)"]
        assert integration.submitted == []
        assert integration.queries == ["2024-03-04", "2024-03-11"]

    def test_conflict_skips_only_that_week_when_not_blocking_all(self):
        session = _session(
            make_selection("2024-03-04", lunch=5000),
            make_selection("2024-03-11", lunch=5000),
        )
        integration = FakeIntegration(paid={
            "2024-03-04": [paid_order("2024-03-04", [("2024-03-04", "child-1", LUNCH, "Pasta")])],
        })
        outcome = _run(PaymentOrchestrator(session, integration, block_all_weeks_on_conflict=False))

        assert outcome.state == PaymentState.REDIRECTING
        assert outcome.skipped_weeks == ["2024-03-04"]
        assert len(outcome.conflicts) == 1
        assert integration.submitted_weeks == ["2024-03-11"]
        # 有冲突的那周保留在会话里，等用户处理
        assert [s.date for s in session.store.all()] == ["2024-03-04"]

    def test_every_week_conflicting_fails_when_not_blocking_all(self):
        session = _session(make_selection("2024-03-04", lunch=5000))
        integration = FakeIntegration(paid={
            "2024-03-04": [paid_order("2024-03-04", [("2024-03-04", "child-1", LUNCH, "Pasta")])],
        })
        outcome = _run(PaymentOrchestrator(session, integration, block_all_weeks_on_conflict=False))

        assert outcome.state == PaymentState.FAILED
        assert outcome.error_code == "DUPLICATE_PAYMENT"
        assert integration.submitted == []

    def test_week_failures_do_not_stop_siblings(self):
        """某周失败不影响后面的周"""
        session = _session(
            make_selection("2024-03-04", lunch=5000),
            make_selection("2024-03-11", lunch=5000),
        )
        integration = FakeIntegration(results={
            "2024-03-04": ConnectionError("service unavailable"),
        })
        outcome = _run(PaymentOrchestrator(session, integration))

        assert outcome.state == PaymentState.REDIRECTING
        assert integration.submitted_weeks == ["2024-03-04", "2024-03-11"]
        assert [r.success for r in outcome.results] == [False, True]
        assert [s.date for s in session.store.all()] == ["2024-03-04"]

    def test_all_weeks_failing_aggregates_messages(self):
        session = _session(
            make_selection("2024-03-04", lunch=5000),
            make_selection("2024-03-11", lunch=5000),
        )
        integration = FakeIntegration(results={
            "2024-03-04": SubmitResult(success=False, error="Menu closed"),
            "2024-03-11": RuntimeError("timeout"),
        })
        orchestrator = PaymentOrchestrator(session, integration)
        outcome = _run(orchestrator)

        assert outcome.state == PaymentState.FAILED
        assert orchestrator.state == PaymentState.FAILED
        assert outcome.error_code == "PAYMENT_FAILED"
        assert outcome.message == (
            "Error processing payments: Week 2024-03-04: Menu closed; Week 2024-03-11: timeout"
        )
        assert len(session.store) == 2

    def test_success_without_url_completes(self):
        session = _session(make_selection("2024-03-04", lunch=5000))
        integration = FakeIntegration(results={
            "2024-03-04": SubmitResult(success=True, order_id=9),
        })
        outcome = _run(PaymentOrchestrator(session, integration))

        assert outcome.state == PaymentState.COMPLETED
        assert outcome.redirect_url is None
        assert len(session.store) == 0

    def test_retry_requires_failed_state(self):
        orchestrator = PaymentOrchestrator(_session(make_selection("2024-03-04", lunch=5000)),
                                           FakeIntegration())
        with pytest.raises(PaymentStateError):
            _run(orchestrator, "retry")

    def test_retry_revalidates_from_scratch(self):
        """重试会重新查询已支付订单，不沿用上次结果"""
        session = _session(make_selection("2024-03-04", lunch=5000))
        integration = FakeIntegration(results={
            "2024-03-04": SubmitResult(success=False, error="gateway down"),
        })
        orchestrator = PaymentOrchestrator(session, integration)
        assert _run(orchestrator).state == PaymentState.FAILED

        del integration.results["2024-03-04"]
        outcome = _run(orchestrator, "retry")

        assert outcome.state == PaymentState.REDIRECTING
        assert integration.queries == ["2024-03-04", "2024-03-04"]
        assert integration.submitted_weeks == ["2024-03-04", "2024-03-04"]

    def test_malformed_date_is_fatal(self):
        session = _session(make_selection("2024-03-04", lunch=5000))
        session.store.load(session.store.all() + [make_selection("03/05/2024", lunch=5000)])
        integration = FakeIntegration()
        outcome = _run(PaymentOrchestrator(session, integration))

        assert outcome.state == PaymentState.FAILED
        assert outcome.error_code == "MALFORMED_DATE"
        assert integration.submitted == []

    def test_unexpected_error_while_validating_can_be_retried(self):
        """查询已支付订单时出现意外异常，尝试以 failed 结束，可以重试"""
        session = _session(make_selection("2024-03-04", lunch=5000))
        integration = FakeIntegration()
        working_query = integration.query_orders

        async def broken_query(*args, **kwargs):
            raise ConnectionError("order service unreachable")

        integration.query_orders = broken_query
        orchestrator = PaymentOrchestrator(session, integration)
        outcome = _run(orchestrator)

        assert outcome.state == PaymentState.FAILED
        assert orchestrator.state == PaymentState.FAILED
        assert outcome.error_code == "INTERNAL_ERROR"
        assert outcome.message
        assert integration.submitted == []
        assert len(session.store) == 1

        integration.query_orders = working_query
        assert _run(orchestrator, "retry").state == PaymentState.REDIRECTING
