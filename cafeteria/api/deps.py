"""
路由依赖
服务实例在 create_app 时挂到 app.state 上，这里按请求取出
"""

from datetime import datetime

from fastapi import Depends, Request

from ..core.security import get_current_user
from ..models.user import User
from ..services.export_service import ExportService
from ..services.menu_integration_service import MenuIntegrationService
from ..services.menu_service import MenuService
from ..services.order_service import OrderService
from ..services.session import OrderSession, SessionRegistry
from ..services.user_service import UserService


def get_menu_service(request: Request) -> MenuService:
    return request.app.state.menu_service


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_integration(request: Request) -> MenuIntegrationService:
    return request.app.state.integration


def get_export_service(request: Request) -> ExportService:
    return request.app.state.export_service


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_now(request: Request) -> datetime:
    return request.app.state.clock()


def get_order_session(
    user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_registry),
) -> OrderSession:
    return registry.get(user)
