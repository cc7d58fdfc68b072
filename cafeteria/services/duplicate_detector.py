"""
重复支付检测
把待支付的选餐与已支付订单逐项比对，防止同一 (日期, 受益人, 类别) 被重复收费

只读检查，不缓存：每次支付前都要用最新查询到的订单重新运行。
这只是提交前的预检查，订单服务在写入时仍会再校验一次。
"""

from typing import Dict, Iterable, List, Tuple

from pydantic import BaseModel, Field

from ..models.base import Category
from ..models.order import ExistingOrder, LineItem, OrderStatus
from ..models.selection import Selection


class Conflict(BaseModel):
    """一条重复记录"""
    date: str
    beneficiary_key: str
    beneficiary_name: str
    category: Category
    existing_item: str
    new_item: str

    def describe(self) -> str:
        return (
            f"{self.date} - {self.beneficiary_name}: "
            f"{Category(self.category).value} already paid ({self.existing_item})"
        )


class ConflictReport(BaseModel):
    """检测结果"""
    has_conflict: bool = False
    conflicts: List[Conflict] = Field(default_factory=list)

    @property
    def descriptions(self) -> List[str]:
        return [c.describe() for c in self.conflicts]


def _paid_index(existing_orders: Iterable[ExistingOrder]) -> Dict[Tuple[str, str, str], str]:
    """(日期, 受益人键, 类别) -> 已支付的菜名"""
    index: Dict[Tuple[str, str, str], str] = {}
    for order in existing_orders:
        if OrderStatus(order.status) != OrderStatus.PAID:
            continue
        for item in order.items:
            key = (item.date, item.beneficiary_key, Category(item.category).value)
            index.setdefault(key, item.item_name)
    return index


def _detect(slots: Iterable[tuple], existing_orders: Iterable[ExistingOrder]) -> ConflictReport:
    paid = _paid_index(existing_orders)
    conflicts: List[Conflict] = []
    for day, beneficiary_key, beneficiary_name, category, item_name in slots:
        existing_item = paid.get((day, beneficiary_key, Category(category).value))
        if existing_item is None:
            continue
        conflicts.append(Conflict(
            date=day,
            beneficiary_key=beneficiary_key,
            beneficiary_name=beneficiary_name,
            category=category,
            existing_item=existing_item,
            new_item=item_name,
        ))
    return ConflictReport(has_conflict=bool(conflicts), conflicts=conflicts)


def detect_conflicts(pending: Iterable[Selection],
                     existing_orders: Iterable[ExistingOrder]) -> ConflictReport:
    """
    检查一周内的待支付选餐是否与已支付订单重复

    只有 paid 订单参与比对；pending / cancelled 订单永远不会阻止重新提交
    """
    slots = (
        (s.date, s.beneficiary_key, s.beneficiary.name, category, item.name)
        for s in pending
        for category, item in s.items()
    )
    return _detect(slots, existing_orders)


def detect_line_item_conflicts(line_items: Iterable[LineItem],
                               existing_orders: Iterable[ExistingOrder]) -> ConflictReport:
    """同上，输入为已展开的订单行（订单服务写入前复核用）"""
    slots = (
        (li.date, li.beneficiary_key, li.beneficiary_name, li.category, li.item_name)
        for li in line_items
    )
    return _detect(slots, existing_orders)
