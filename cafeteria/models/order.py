"""
订单相关数据模型
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, Category


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"         # 已提交，待支付
    PAID = "paid"               # 已支付
    CANCELLED = "cancelled"     # 已取消


class LineItem(BaseModel):
    """提交给订单服务的一行：某受益人某天的一个菜单项"""
    date: str = Field(..., description="供餐日期")
    beneficiary_key: str = Field(..., description="受益人键")
    beneficiary_name: str = Field(..., description="受益人姓名")
    category: Category = Field(..., description="类别")
    item_id: str = Field(..., description="菜单项ID")
    item_code: str = Field("", description="菜单编码")
    item_name: str = Field(..., description="菜名")
    price: int = Field(..., ge=0, description="价格")
    description: Optional[str] = None


class ExistingOrder(BaseEntity):
    """已提交的订单（对核心逻辑只读）"""
    order_id: int = Field(..., description="订单ID")
    user_id: int = Field(..., description="用户ID")
    user_type: str = Field(..., description="下单时的用户类型")
    week_start: str = Field(..., description="周一日期")
    status: OrderStatus = Field(..., description="订单状态")
    total: int = Field(0, description="订单总额")
    items: List[LineItem] = Field(default_factory=list)
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    admin_notes: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID


class SubmitResult(BaseModel):
    """订单服务的提交结果"""
    success: bool
    order_id: Optional[int] = None
    payment_url: Optional[str] = None
    error: Optional[str] = None


class PaymentRequest(BaseModel):
    """向支付网关发起的请求"""
    order_id: int
    amount: int
    currency: str = "clp"
    description: str
    customer_email: str
    customer_name: str = "Customer"
    success_url: str
    cancel_url: str


class PaymentResponse(BaseModel):
    """支付网关返回"""
    success: bool
    payment_id: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None
