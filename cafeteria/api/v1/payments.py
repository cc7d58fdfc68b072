"""
支付路由
发起支付、失败后重试、支付返回确认
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core.error_handler import ErrorHandler, ErrorResponse, create_success_response
from ...core.exceptions import PaymentStateError, PermissionDeniedError
from ...core.security import get_current_user
from ...models.user import User
from ...schemas.payment import PaymentConfirmRequest
from ...services.menu_integration_service import MenuIntegrationService
from ...services.order_service import OrderService
from ...services.payment_orchestrator import PaymentOrchestrator, PaymentOutcome, PaymentState
from ...services.session import OrderSession, SessionRegistry
from ..deps import get_integration, get_order_service, get_order_session, get_registry

router = APIRouter()


def _respond(outcome: PaymentOutcome):
    data = outcome.model_dump(mode="json")
    if outcome.state != PaymentState.FAILED:
        return create_success_response(data, outcome.message or "OK")
    status = ErrorHandler.ERROR_CODE_STATUS_MAP.get(outcome.error_code, 400)
    return ErrorResponse(outcome.error_code, outcome.message, data, status).to_json_response()


@router.post("")
async def process_payment(session: OrderSession = Depends(get_order_session),
                          registry: SessionRegistry = Depends(get_registry),
                          integration: MenuIntegrationService = Depends(get_integration)):
    """按周提交当前选餐，返回第一个需要跳转的支付链接"""
    orchestrator = PaymentOrchestrator(session, integration)
    session.payment_attempt = orchestrator
    outcome = await orchestrator.process_payment()
    registry.save(session)
    return _respond(outcome)


@router.post("/retry")
async def retry_payment(session: OrderSession = Depends(get_order_session),
                        registry: SessionRegistry = Depends(get_registry)):
    orchestrator = session.payment_attempt
    if orchestrator is None:
        raise PaymentStateError("There is no failed payment to retry")
    outcome = await orchestrator.retry()
    registry.save(session)
    return _respond(outcome)


@router.post("/confirm")
async def confirm_payment(req: PaymentConfirmRequest,
                          user: User = Depends(get_current_user),
                          orders: OrderService = Depends(get_order_service),
                          integration: MenuIntegrationService = Depends(get_integration)):
    """支付网关返回后确认订单"""
    order = orders.get_order(req.order_id)
    if order.user_id != user.id and not user.is_admin:
        raise PermissionDeniedError("The order belongs to another account")
    order = await integration.confirm_payment(req.order_id, req.payment_id)
    return create_success_response(order.model_dump(mode="json"), "Payment confirmed")
