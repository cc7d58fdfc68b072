"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import menus, orders, payments, selections, users

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(menus.router, prefix="/menus", tags=["menus"])
api_router.include_router(selections.router, prefix="/selections", tags=["selections"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
