"""
导出服务
管理端按周导出订单：Excel（概况 + 订单明细 + 厨房备餐）和 CSV（订单明细）
"""

import io
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from ..models.base import Category
from ..models.order import ExistingOrder, OrderStatus
from .order_service import OrderService
from .user_service import UserService
from .week_partitioner import week_start_for

ORDER_LINE_COLUMNS = [
    "Order ID", "Status", "Account", "Account type", "Beneficiary", "Date",
    "Category", "Item code", "Item", "Price",
]


def kitchen_summary(orders: Iterable[ExistingOrder]) -> List[Dict[str, Any]]:
    """
    厨房备餐统计：已支付订单行按 (日期, 类别, 菜单项) 计数

    午餐排在加餐之前，同一类别内按菜单编码排序
    """
    counts: Counter = Counter()
    names: Dict[tuple, str] = {}
    for order in orders:
        if OrderStatus(order.status) != OrderStatus.PAID:
            continue
        for item in order.items:
            key = (item.date, Category(item.category).value, item.item_code or item.item_id)
            counts[key] += 1
            names.setdefault(key, item.item_name)

    order_of = {Category.LUNCH.value: 0, Category.SNACK.value: 1}
    rows = []
    for key in sorted(counts, key=lambda k: (k[0], order_of[k[1]], k[2])):
        day, category, code = key
        rows.append({
            "date": day,
            "category": category,
            "item_code": code,
            "item_name": names[key],
            "quantity": counts[key],
        })
    return rows


class ExportService:
    """导出服务"""

    def __init__(self, order_service: Optional[OrderService] = None,
                 user_service: Optional[UserService] = None):
        self.orders = order_service or OrderService()
        self.users = user_service or UserService(self.orders.db)

    def export_week_orders_excel(self, week_start: str) -> bytes:
        """导出一周的订单为 Excel 文件"""
        week_start = week_start_for(week_start)
        orders = self.orders.query_orders(week_start=week_start)
        stats = self.orders.get_week_order_stats(week_start)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            self._create_summary_sheet(writer, week_start, stats)
            self._order_lines_frame(orders).to_excel(writer, sheet_name="Order lines", index=False)
            self._create_kitchen_sheet(writer, orders)

        buffer.seek(0)
        return buffer.getvalue()

    def export_week_orders_csv(self, week_start: str) -> str:
        """导出一周的订单明细为 CSV 文本"""
        orders = self.orders.query_orders(week_start=week_start_for(week_start))
        return self._order_lines_frame(orders).to_csv(index=False)

    def _create_summary_sheet(self, writer, week_start: str, stats: Dict[str, Any]):
        by_status = stats["orders_by_status"]
        summary = pd.DataFrame({
            "Field": [
                "Week", "Total orders", "Paid orders", "Pending orders", "Cancelled orders",
                "Revenue (CLP)", "Average paid order (CLP)", "Exported at",
            ],
            "Value": [
                week_start,
                stats["total_orders"],
                by_status[OrderStatus.PAID.value],
                by_status[OrderStatus.PENDING.value],
                by_status[OrderStatus.CANCELLED.value],
                stats["total_revenue"],
                stats["average_order_value"],
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            ],
        })
        summary.to_excel(writer, sheet_name="Summary", index=False)

    def _create_kitchen_sheet(self, writer, orders: List[ExistingOrder]):
        rows = kitchen_summary(orders)
        if not rows:
            pd.DataFrame({"Note": ["No paid orders"]}).to_excel(writer, sheet_name="Kitchen", index=False)
            return
        frame = pd.DataFrame(rows).rename(columns={
            "date": "Date", "category": "Category", "item_code": "Item code",
            "item_name": "Item", "quantity": "Quantity",
        })
        frame.to_excel(writer, sheet_name="Kitchen", index=False)

    def _order_lines_frame(self, orders: List[ExistingOrder]) -> pd.DataFrame:
        emails: Dict[int, str] = {}
        rows = []
        for order in orders:
            if order.user_id not in emails:
                emails[order.user_id] = self.users.get_user(order.user_id).email
            for item in order.items:
                rows.append([
                    order.order_id,
                    OrderStatus(order.status).value,
                    emails[order.user_id],
                    order.user_type,
                    item.beneficiary_name,
                    item.date,
                    Category(item.category).value,
                    item.item_code,
                    item.item_name,
                    item.price,
                ])
        return pd.DataFrame(rows, columns=ORDER_LINE_COLUMNS)
