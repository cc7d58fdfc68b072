"""
用户路由
当前用户信息和孩子登记；管理端用户列表和统计
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import get_current_user, require_admin
from ...models.base import UserType
from ...models.user import User
from ...schemas.user import DependentCreateRequest
from ...services.user_service import UserService
from ..deps import get_now, get_user_service

router = APIRouter()


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    data = user.model_dump(mode="json")
    data["beneficiaries"] = [{**b.model_dump(mode="json"), "key": b.key} for b in user.beneficiaries()]
    return create_success_response(data)


@router.post("/me/dependents")
def add_dependent(req: DependentCreateRequest,
                  user: User = Depends(get_current_user),
                  users: UserService = Depends(get_user_service)):
    dependent = users.add_dependent(user.id, req.name, req.course)
    return create_success_response(dependent.model_dump(mode="json"), "Dependent registered")


@router.delete("/me/dependents/{dependent_id}")
def remove_dependent(dependent_id: str,
                     user: User = Depends(get_current_user),
                     users: UserService = Depends(get_user_service)):
    users.deactivate_dependent(user.id, dependent_id)
    return create_success_response({"id": dependent_id}, "Dependent removed")


# ---- 管理端 ----

@router.get("")
def list_users(user_type: Optional[UserType] = None,
               is_admin: Optional[bool] = None,
               search: Optional[str] = Query(None, description="按邮箱或姓名搜索"),
               limit: int = Query(50, ge=1, le=200),
               offset: int = Query(0, ge=0),
               admin: User = Depends(require_admin),
               users: UserService = Depends(get_user_service)):
    result = users.list_users(user_type=user_type, is_admin=is_admin, search=search,
                              limit=limit, offset=offset)
    return create_success_response([u.model_dump(mode="json") for u in result])


@router.get("/stats")
def user_stats(admin: User = Depends(require_admin),
               users: UserService = Depends(get_user_service),
               now: datetime = Depends(get_now)):
    return create_success_response(users.get_user_stats(now))
