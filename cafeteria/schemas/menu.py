"""
菜单相关的请求/响应模式
"""

from typing import List

from pydantic import BaseModel, Field

from ..models.menu import DayMenu, DefaultSnack, WeekInfo


class WeekPublishRequest(BaseModel):
    """发布/撤回整周菜单"""
    published: bool = Field(True, description="是否发布")


class WeekMenuResponse(BaseModel):
    """一周的菜单"""
    week: WeekInfo
    days: List[DayMenu]


class WeekDuplicateRequest(BaseModel):
    """把某周的菜单复制到路径中的目标周"""
    source_week: str = Field(..., description="源周内任意日期")


class DefaultSnacksRequest(BaseModel):
    """整体替换默认点心配置"""
    snacks: List[DefaultSnack] = Field(..., description="默认点心")
