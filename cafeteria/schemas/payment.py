"""
支付相关的请求模式
"""

from typing import Optional

from pydantic import BaseModel, Field


class PaymentConfirmRequest(BaseModel):
    """支付返回/回调"""
    order_id: int = Field(..., description="订单ID")
    payment_id: Optional[str] = Field(None, description="支付网关的会话ID")
