"""
菜单相关数据模型
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .base import BaseEntity, Category, TimestampMixin
from .selection import MenuItemRef


class MenuItemBase(BaseModel):
    """菜单项基础字段"""
    code: str = Field(..., min_length=1, max_length=20, description="菜单编码")
    name: str = Field(..., min_length=1, max_length=200, description="菜名")
    description: Optional[str] = Field(None, description="描述")
    category: Category = Field(..., description="类别")
    price: Optional[int] = Field(None, ge=0, description="单独定价，为空时按用户类型默认价")


class MenuItemCreate(MenuItemBase):
    """菜单项创建模型"""
    service_date: str = Field(..., description="供餐日期 YYYY-MM-DD")
    published: bool = False


class MenuItemUpdate(BaseModel):
    """菜单项更新模型，只更新给出的字段"""
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    published: Optional[bool] = None

    @field_validator("code", "name")
    @classmethod
    def not_null(cls, v):
        # 字段可以省略，但不能显式置空
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v


class DefaultSnack(BaseModel):
    """默认点心模板，按周或按天批量生成点心菜单项"""
    code: str = Field(..., min_length=1, max_length=20, description="菜单编码")
    name: str = Field(..., min_length=1, max_length=200, description="名称")
    price: int = Field(..., gt=0, description="价格")
    active: bool = True


class MenuItem(MenuItemBase, BaseEntity, TimestampMixin):
    """菜单项完整模型"""
    id: int = Field(..., description="菜单项ID")
    service_date: str = Field(..., description="供餐日期")
    week_start: str = Field(..., description="所在周的周一")
    published: bool = False
    active: bool = True

    def to_ref(self, price: int) -> MenuItemRef:
        """按给定价格生成选餐用的引用"""
        return MenuItemRef(
            id=str(self.id),
            code=self.code,
            name=self.name,
            price=price,
            description=self.description,
        )


class DayMenu(BaseModel):
    """某一天可选的菜单"""
    date: str
    day_name: str
    lunch_options: List[MenuItemRef] = Field(default_factory=list)
    snack_options: List[MenuItemRef] = Field(default_factory=list)
    is_available: bool = False

    @property
    def has_items(self) -> bool:
        return bool(self.lunch_options or self.snack_options)


class WeekInfo(BaseModel):
    """周信息"""
    week_start: str
    week_end: str
    label: str
    week_number: int
    year: int
    is_current_week: bool
    is_ordering_allowed: bool
    order_deadline: datetime
