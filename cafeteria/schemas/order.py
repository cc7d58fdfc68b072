"""
订单相关的请求模式
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..models.order import OrderStatus


class OrderCancelRequest(BaseModel):
    """订单取消请求"""
    reason: Optional[str] = Field(None, max_length=200, description="取消原因")


class OrderStatusUpdateRequest(BaseModel):
    """管理员手动修改订单状态"""
    status: OrderStatus = Field(..., description="新状态")
    notes: Optional[str] = Field(None, max_length=500, description="管理员备注")
