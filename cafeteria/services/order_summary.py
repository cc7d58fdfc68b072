"""
订单汇总
把选餐折叠为数量、分类小计、总计以及按受益人的明细

价格取选餐时的快照，不会重新读取菜单价格。
"""

from typing import Dict, Iterable, List

from ..models.base import Category
from ..models.order import LineItem
from ..models.selection import BeneficiaryTotals, DateTotals, OrderSummary, Selection


def summarize(selections: Iterable[Selection]) -> OrderSummary:
    """
    汇总选餐（纯函数，无副作用）

    total == subtotal_lunch + subtotal_snack == 各受益人 subtotal 之和
    """
    selections = list(selections)
    summary = OrderSummary(selections=selections)
    per_beneficiary: Dict[str, BeneficiaryTotals] = {}

    for selection in selections:
        key = selection.beneficiary_key
        totals = per_beneficiary.get(key)
        if totals is None:
            totals = BeneficiaryTotals(beneficiary=selection.beneficiary)
            per_beneficiary[key] = totals

        if selection.lunch is not None:
            summary.total_lunches += 1
            summary.subtotal_lunch += selection.lunch.price
            totals.lunch_count += 1
            totals.subtotal += selection.lunch.price

        if selection.snack is not None:
            summary.total_snacks += 1
            summary.subtotal_snack += selection.snack.price
            totals.snack_count += 1
            totals.subtotal += selection.snack.price

    summary.total = summary.subtotal_lunch + summary.subtotal_snack
    summary.per_beneficiary = per_beneficiary
    return summary


def summarize_by_date(selections: Iterable[Selection]) -> List[DateTotals]:
    """按日期汇总，结果按日期排序"""
    by_date: Dict[str, DateTotals] = {}
    for selection in selections:
        totals = by_date.setdefault(selection.date, DateTotals(date=selection.date))
        for category, item in selection.items():
            if category == Category.LUNCH:
                totals.lunch_count += 1
            else:
                totals.snack_count += 1
            totals.subtotal += item.price
    return [by_date[d] for d in sorted(by_date)]


def order_total(line_items: Iterable[LineItem]) -> int:
    return sum(item.price for item in line_items)


def to_line_items(selections: Iterable[Selection]) -> List[LineItem]:
    """
    把选餐展开为订单行

    按 (受益人, 日期) 分组输出，组内午餐在前；空 Selection 不产生任何行
    """
    grouped: Dict[tuple, List[Selection]] = {}
    for selection in selections:
        grouped.setdefault((selection.beneficiary_key, selection.date), []).append(selection)

    line_items: List[LineItem] = []
    for group in grouped.values():
        for selection in group:
            beneficiary = selection.beneficiary
            for category, item in selection.items():
                line_items.append(LineItem(
                    date=selection.date,
                    beneficiary_key=beneficiary.key,
                    beneficiary_name=beneficiary.name,
                    category=category,
                    item_id=item.id,
                    item_code=item.code or item.id,
                    item_name=item.name,
                    price=item.price,
                    description=item.description,
                ))
    return line_items
