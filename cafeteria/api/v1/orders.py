"""
订单路由
用户端查看自己的订单；管理端按周查看、统计、导出、取消订单和手动修改状态
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from ...core.error_handler import create_success_response
from ...core.exceptions import OrderStatusError, PermissionDeniedError, ValidationError
from ...core.security import get_current_user, require_admin
from ...models.order import OrderStatus
from ...models.user import User
from ...schemas.order import OrderCancelRequest, OrderStatusUpdateRequest
from ...services.export_service import ExportService
from ...services.order_service import OrderService
from ...services.week_partitioner import week_start_for
from ..deps import get_export_service, get_order_service

router = APIRouter()


@router.get("")
def list_my_orders(week_start: Optional[str] = None,
                   status: Optional[OrderStatus] = None,
                   user: User = Depends(get_current_user),
                   orders: OrderService = Depends(get_order_service)):
    result = orders.query_orders(
        user_id=user.id,
        week_start=week_start,
        statuses=[status] if status else None,
    )
    return create_success_response([o.model_dump(mode="json") for o in result])


@router.get("/admin/week/{week_start}")
def list_week_orders(week_start: str,
                     status: Optional[OrderStatus] = None,
                     admin: User = Depends(require_admin),
                     orders: OrderService = Depends(get_order_service)):
    result = orders.query_orders(week_start=week_start, statuses=[status] if status else None)
    return create_success_response([o.model_dump(mode="json") for o in result])


@router.get("/admin/week/{week_start}/stats")
def week_stats(week_start: str,
               admin: User = Depends(require_admin),
               orders: OrderService = Depends(get_order_service)):
    return create_success_response(orders.get_week_order_stats(week_start))


@router.get("/admin/week/{week_start}/export")
def export_week(week_start: str,
                format: str = Query("xlsx", description="xlsx 或 csv"),
                admin: User = Depends(require_admin),
                exporter: ExportService = Depends(get_export_service)):
    """导出一周订单"""
    start = week_start_for(week_start)
    if format == "csv":
        return Response(
            content=exporter.export_week_orders_csv(start),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="orders-{start}.csv"'},
        )
    if format != "xlsx":
        raise ValidationError(f"Unsupported export format: {format}")
    return Response(
        content=exporter.export_week_orders_excel(start),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="orders-{start}.xlsx"'},
    )


@router.post("/{order_id}/cancel")
def cancel_order(order_id: int, req: Optional[OrderCancelRequest] = None,
                 user: User = Depends(get_current_user),
                 orders: OrderService = Depends(get_order_service)):
    """管理员可取消任意订单；用户只能取消自己未支付的订单"""
    order = orders.get_order(order_id)
    if not user.is_admin:
        if order.user_id != user.id:
            raise PermissionDeniedError("The order belongs to another account")
        if order.is_paid:
            raise OrderStatusError(order_id, OrderStatus.PAID.value)
    reason = req.reason if req is not None else None
    cancelled = orders.cancel_order(order_id, reason, actor_id=user.id)
    return create_success_response(cancelled.model_dump(mode="json"), "Order cancelled")


@router.put("/{order_id}/status")
def update_order_status(order_id: int, req: OrderStatusUpdateRequest,
                        admin: User = Depends(require_admin),
                        orders: OrderService = Depends(get_order_service)):
    """管理员手动修改订单状态"""
    order = orders.update_order_status(order_id, req.status, req.notes, actor_id=admin.id)
    return create_success_response(order.model_dump(mode="json"), "Order status updated")
