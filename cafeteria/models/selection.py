"""
选餐相关数据模型

Selection 表示某个受益人在某个供餐日的选择；午餐和加餐互相独立。
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import Category

# 教职工为自己订餐时没有 dependent id，用这个键分组
STAFF_BENEFICIARY_KEY = "self"
STAFF_BENEFICIARY_NAME = "Staff"


class MenuItemRef(BaseModel):
    """菜单项引用，price 为选餐时的价格快照"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="菜单项ID")
    code: str = Field("", description="菜单编码")
    name: str = Field(..., description="菜名")
    price: int = Field(..., ge=0, description="价格（比索）")
    description: Optional[str] = Field(None, description="描述")


class Beneficiary(BaseModel):
    """受益人：id 为空表示教职工本人"""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="孩子ID")
    name: str = Field(STAFF_BENEFICIARY_NAME, description="姓名")
    course: Optional[str] = Field(None, description="班级")

    @property
    def key(self) -> str:
        return self.id or STAFF_BENEFICIARY_KEY

    @property
    def is_staff(self) -> bool:
        return self.id is None

    @classmethod
    def staff(cls, name: str = STAFF_BENEFICIARY_NAME) -> "Beneficiary":
        return cls(id=None, name=name, course=None)


class Selection(BaseModel):
    """某一天、某个受益人的选餐"""
    model_config = ConfigDict(frozen=True)

    date: str = Field(..., description="供餐日期 YYYY-MM-DD")
    beneficiary: Beneficiary = Field(default_factory=Beneficiary.staff)
    lunch: Optional[MenuItemRef] = None
    snack: Optional[MenuItemRef] = None

    @property
    def key(self) -> tuple:
        return (self.date, self.beneficiary.key)

    @property
    def beneficiary_key(self) -> str:
        return self.beneficiary.key

    @property
    def is_empty(self) -> bool:
        return self.lunch is None and self.snack is None

    def item_for(self, category: Category) -> Optional[MenuItemRef]:
        return self.lunch if Category(category) == Category.LUNCH else self.snack

    def with_item(self, category: Category, item: Optional[MenuItemRef]) -> "Selection":
        field = Category(category).value
        return self.model_copy(update={field: item})

    def items(self) -> List[tuple]:
        """已选的 (类别, 菜单项)，午餐在前"""
        result = []
        if self.lunch is not None:
            result.append((Category.LUNCH, self.lunch))
        if self.snack is not None:
            result.append((Category.SNACK, self.snack))
        return result


class BeneficiaryTotals(BaseModel):
    """单个受益人的汇总"""
    beneficiary: Beneficiary
    lunch_count: int = 0
    snack_count: int = 0
    subtotal: int = 0


class DateTotals(BaseModel):
    """单日汇总"""
    date: str
    lunch_count: int = 0
    snack_count: int = 0
    subtotal: int = 0


class OrderSummary(BaseModel):
    """全部选餐的汇总视图（不落库）"""
    total_lunches: int = 0
    total_snacks: int = 0
    subtotal_lunch: int = 0
    subtotal_snack: int = 0
    total: int = 0
    selections: List[Selection] = Field(default_factory=list)
    per_beneficiary: Dict[str, BeneficiaryTotals] = Field(default_factory=dict)
