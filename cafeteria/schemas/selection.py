"""
选餐相关的请求/响应模式
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.base import Category
from ..models.selection import BeneficiaryTotals, DateTotals, Selection


class SelectionUpdateRequest(BaseModel):
    """设置或清除某天某受益人的一个类别"""
    date: str = Field(..., description="供餐日期 YYYY-MM-DD")
    beneficiary_key: Optional[str] = Field(None, description="孩子ID；教职工可省略")
    category: Category = Field(..., description="lunch / snack")
    item_id: Optional[str] = Field(None, description="菜单项ID；为空表示清除")


class WeekTotal(BaseModel):
    """某一周的待支付金额"""
    week_start: str
    selections: int
    total: int


class SelectionSummaryResponse(BaseModel):
    """选餐汇总"""
    total_lunches: int
    total_snacks: int
    subtotal_lunch: int
    subtotal_snack: int
    total: int
    per_beneficiary: Dict[str, BeneficiaryTotals]
    by_date: List[DateTotals]
    weeks: List[WeekTotal]
    selections: List[Selection]
