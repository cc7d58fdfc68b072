"""
用户相关数据模型
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin, UserType
from .selection import Beneficiary


class Dependent(BaseEntity):
    """监护人登记的孩子"""
    id: str = Field(..., description="孩子ID")
    name: str = Field(..., max_length=100, description="姓名")
    course: Optional[str] = Field(None, description="班级")
    active: bool = True

    def as_beneficiary(self) -> Beneficiary:
        return Beneficiary(id=self.id, name=self.name, course=self.course)


class UserCreate(BaseModel):
    """用户创建模型"""
    email: str = Field(..., description="邮箱")
    name: Optional[str] = Field(None, max_length=100, description="姓名")
    user_type: UserType = Field(..., description="账户类型")
    is_admin: bool = False


class User(BaseEntity, TimestampMixin):
    """用户完整模型"""
    id: int = Field(..., description="用户ID")
    email: str = Field(..., description="邮箱")
    name: Optional[str] = Field(None, description="姓名")
    user_type: UserType = Field(..., description="账户类型")
    is_admin: bool = Field(False, description="是否为管理员")
    dependents: List[Dependent] = Field(default_factory=list)

    @property
    def is_staff(self) -> bool:
        return self.user_type == UserType.STAFF

    def beneficiaries(self) -> List[Beneficiary]:
        """允许为之订餐的受益人"""
        if self.is_staff:
            return [Beneficiary.staff(self.name or "Staff")]
        return [d.as_beneficiary() for d in self.dependents if d.active]

    def find_beneficiary(self, key: str) -> Optional[Beneficiary]:
        for beneficiary in self.beneficiaries():
            if beneficiary.key == key:
                return beneficiary
        return None

    def display_name(self) -> str:
        """支付页面上显示的客户名"""
        if self.name:
            return self.name
        local = self.email.split("@")[0]
        words = local.replace(".", " ").replace("_", " ").replace("-", " ").split()
        return " ".join(w.capitalize() for w in words) or "Customer"
