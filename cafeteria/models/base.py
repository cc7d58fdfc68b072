"""
基础数据模型
定义通用的模型基类和枚举
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Category(str, Enum):
    """菜单类别"""
    LUNCH = "lunch"     # 午餐
    SNACK = "snack"     # 加餐


class UserType(str, Enum):
    """账户类型"""
    GUARDIAN = "guardian"   # 监护人，为孩子订餐
    STAFF = "staff"         # 教职工，为自己订餐


class TimestampMixin(BaseModel):
    """时间戳混入类"""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BaseEntity(BaseModel):
    """基础实体模型"""

    model_config = {"from_attributes": True, "use_enum_values": True}
