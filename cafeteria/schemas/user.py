"""
用户相关的请求模式
"""

from typing import Optional

from pydantic import BaseModel, Field


class DependentCreateRequest(BaseModel):
    """登记孩子"""
    name: str = Field(..., min_length=1, max_length=100, description="姓名")
    course: Optional[str] = Field(None, max_length=50, description="班级")
