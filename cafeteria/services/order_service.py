"""
订单服务模块
订单的持久化、查询、状态流转和统计

主要功能：
- 保存按周提交的订单及其明细行
- 按用户/周/状态查询订单
- 支付确认、取消、管理员手动改状态
- 周统计（管理端报表）

业务规则：
- 订单状态：pending -> paid，pending/paid -> cancelled
- 管理员可以手动改为任意状态；改为 paid 时同样复核重复支付
- 同一用户同一 (日期, 受益人, 类别) 只能有一个已支付的订单行，写入时复核
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import DuplicatePaymentError, OrderNotFoundError, OrderStatusError
from ..models.base import Category, UserType
from ..models.order import ExistingOrder, LineItem, OrderStatus
from ..models.user import User
from .duplicate_detector import detect_line_item_conflicts
from .order_summary import order_total
from .week_partitioner import DATE_FORMAT, week_start_for

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    "order_id, user_id, user_type, week_start, total, status, payment_id, "
    "created_at, paid_at, admin_notes"
)


class OrderService:
    """订单服务类，封装所有订单相关的持久化逻辑"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def save_order(self, user: User, week_start: str, line_items: List[LineItem]) -> int:
        """
        保存一个 pending 订单

        写入前在同一事务内复核已支付订单，保证不会对同一项重复收费

        Raises:
            DuplicatePaymentError: 有订单行已被支付时
        """
        week_start = week_start_for(week_start)
        total = order_total(line_items)

        with self.db.transaction() as conn:
            self._ensure_not_paid(user.id, week_start, line_items)

            order_id = conn.execute(
                """
                INSERT INTO orders(user_id, user_type, week_start, total, status)
                VALUES (?,?,CAST(? AS DATE),?,?) RETURNING order_id
                """,
                [user.id, UserType(user.user_type).value, week_start, total, OrderStatus.PENDING.value],
            ).fetchone()[0]

            for item in line_items:
                conn.execute(
                    """
                    INSERT INTO order_items(order_id, service_date, beneficiary_key, beneficiary_name,
                                            category, menu_item_id, item_code, item_name, price)
                    VALUES (?,CAST(? AS DATE),?,?,?,?,?,?,?)
                    """,
                    [order_id, item.date, item.beneficiary_key, item.beneficiary_name,
                     Category(item.category).value, item.item_id, item.item_code,
                     item.item_name, item.price],
                )

            self.db.write_log("order_create", {
                "order_id": order_id,
                "week_start": week_start,
                "items": len(line_items),
                "total": total,
            }, user_id=user.id, actor_id=user.id, conn=conn)

        logger.info("Saved order %s for user %s week %s total %s", order_id, user.id, week_start, total)
        return order_id

    def get_order(self, order_id: int) -> ExistingOrder:
        orders = self._load_orders("order_id = ?", [order_id])
        if not orders:
            raise OrderNotFoundError(order_id)
        return orders[0]

    def query_orders(self, user_id: Optional[int] = None, week_start: Optional[str] = None,
                     statuses: Optional[Iterable[OrderStatus]] = None) -> List[ExistingOrder]:
        """按用户、周、状态过滤订单，每次都从数据库读取最新数据"""
        conditions, params = [], []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if week_start:
            conditions.append("week_start = CAST(? AS DATE)")
            params.append(week_start_for(week_start))
        if statuses:
            values = [OrderStatus(s).value for s in statuses]
            conditions.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        return self._load_orders(" AND ".join(conditions) or "TRUE", params)

    def set_payment_id(self, order_id: int, payment_id: str) -> None:
        self.db.execute_query(
            "UPDATE orders SET payment_id = ?, updated_at = now() WHERE order_id = ?",
            [payment_id, order_id],
        )

    def mark_order_paid(self, order_id: int, payment_id: Optional[str] = None) -> ExistingOrder:
        """
        标记订单已支付；重复通知是幂等的

        Raises:
            OrderStatusError: 订单已取消时
        """
        order = self.get_order(order_id)
        if order.status == OrderStatus.PAID:
            return order
        if order.status == OrderStatus.CANCELLED:
            raise OrderStatusError(order_id, OrderStatus.CANCELLED.value)

        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE orders SET status = ?, payment_id = COALESCE(CAST(? AS VARCHAR), payment_id),
                       paid_at = now(), updated_at = now()
                WHERE order_id = ?
                """,
                [OrderStatus.PAID.value, payment_id, order_id],
            )
            self.db.write_log("order_paid", {"order_id": order_id, "payment_id": payment_id,
                                             "total": order.total},
                              user_id=order.user_id, conn=conn)
        logger.info("Order %s marked paid", order_id)
        return self.get_order(order_id)

    def cancel_order(self, order_id: int, reason: Optional[str] = None,
                     actor_id: Optional[int] = None) -> ExistingOrder:
        order = self.get_order(order_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderStatusError(order_id, OrderStatus.CANCELLED.value)

        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE orders SET status = ?, cancel_reason = ?, updated_at = now() WHERE order_id = ?",
                [OrderStatus.CANCELLED.value, reason, order_id],
            )
            self.db.write_log("order_cancel", {"order_id": order_id, "reason": reason,
                                               "previous_status": order.status},
                              user_id=order.user_id, actor_id=actor_id, conn=conn)
        return self.get_order(order_id)

    def update_order_status(self, order_id: int, status: OrderStatus, notes: Optional[str] = None,
                            actor_id: Optional[int] = None) -> ExistingOrder:
        """
        管理员手动修改订单状态

        paid 写入支付时间并清掉取消原因；cancelled 清掉支付时间；pending 两者都清掉。
        状态不变时只更新备注。

        Raises:
            DuplicatePaymentError: 改为 paid 会与该用户其它已支付订单重复时
        """
        status = OrderStatus(status)
        order = self.get_order(order_id)

        with self.db.transaction() as conn:
            if status != order.status:
                if status == OrderStatus.PAID:
                    self._ensure_not_paid(order.user_id, order.week_start, order.items)
                    timestamps = "paid_at = now(), cancel_reason = NULL"
                elif status == OrderStatus.CANCELLED:
                    timestamps = "paid_at = NULL"
                else:
                    timestamps = "paid_at = NULL, cancel_reason = NULL"
                conn.execute(
                    f"UPDATE orders SET status = ?, {timestamps}, updated_at = now() WHERE order_id = ?",
                    [status.value, order_id],
                )
            if notes:
                conn.execute(
                    "UPDATE orders SET admin_notes = ?, updated_at = now() WHERE order_id = ?",
                    [notes, order_id],
                )
            self.db.write_log("order_status_update", {
                "order_id": order_id,
                "previous_status": order.status,
                "status": status.value,
                "notes": notes,
            }, user_id=order.user_id, actor_id=actor_id, conn=conn)

        logger.info("Order %s status changed from %s to %s by %s",
                    order_id, OrderStatus(order.status).value, status.value, actor_id)
        return self.get_order(order_id)

    def get_week_order_stats(self, week_start: str) -> Dict[str, Any]:
        """
        周统计

        Returns:
            dict: 各状态订单数、已支付收入、平均客单价、按用户类型的订单数、
                  按日期的订单行数和已支付收入
        """
        orders = self.query_orders(week_start=week_start)
        by_status: Dict[str, int] = {s.value: 0 for s in OrderStatus}
        by_user_type: Dict[str, int] = {t.value: 0 for t in UserType}
        items_by_day: Dict[str, int] = defaultdict(int)
        revenue_by_day: Dict[str, int] = defaultdict(int)

        for order in orders:
            by_status[OrderStatus(order.status).value] += 1
            by_user_type[order.user_type] = by_user_type.get(order.user_type, 0) + 1
            for item in order.items:
                items_by_day[item.date] += 1
                if order.is_paid:
                    revenue_by_day[item.date] += item.price

        paid = [o for o in orders if o.is_paid]
        revenue = sum(o.total for o in paid)
        return {
            "week_start": week_start_for(week_start),
            "total_orders": len(orders),
            "orders_by_status": by_status,
            "total_revenue": revenue,
            "average_order_value": round(revenue / len(paid)) if paid else 0,
            "orders_by_user_type": by_user_type,
            "items_by_day": dict(sorted(items_by_day.items())),
            "revenue_by_day": dict(sorted(revenue_by_day.items())),
        }

    def _ensure_not_paid(self, user_id: int, week_start: str, line_items: List[LineItem]) -> None:
        paid_orders = self.query_orders(user_id=user_id, week_start=week_start,
                                        statuses=[OrderStatus.PAID])
        if not paid_orders:
            return
        report = detect_line_item_conflicts(line_items, paid_orders)
        if report.has_conflict:
            raise DuplicatePaymentError(report.descriptions)

    def _load_orders(self, condition: str, params: list) -> List[ExistingOrder]:
        rows = self.db.fetch_dicts(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {condition} ORDER BY created_at, order_id",
            params,
        )
        if not rows:
            return []

        ids = [row["order_id"] for row in rows]
        item_rows = self.db.fetch_dicts(
            f"""
            SELECT order_id, service_date, beneficiary_key, beneficiary_name, category,
                   menu_item_id, item_code, item_name, price
            FROM order_items WHERE order_id IN ({', '.join('?' for _ in ids)})
            ORDER BY item_id
            """,
            ids,
        )
        items: Dict[int, List[LineItem]] = defaultdict(list)
        for row in item_rows:
            items[row["order_id"]].append(LineItem(
                date=row["service_date"].strftime(DATE_FORMAT),
                beneficiary_key=row["beneficiary_key"],
                beneficiary_name=row["beneficiary_name"] or row["beneficiary_key"],
                category=row["category"],
                item_id=row["menu_item_id"] or "",
                item_code=row["item_code"] or "",
                item_name=row["item_name"] or "",
                price=row["price"],
            ))

        return [
            ExistingOrder(
                **{**row, "week_start": row["week_start"].strftime(DATE_FORMAT)},
                items=items.get(row["order_id"], []),
            )
            for row in rows
        ]
