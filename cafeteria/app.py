"""
学校食堂订餐后端 - 主应用入口
监护人为孩子、教职工为自己按天选择午餐/加餐，并按周付款

主要功能模块：
- 周菜单查询与管理
- 选餐会话（草稿持久化）
- 按周支付编排与重复支付检测
- 订单查询、统计与导出
- 操作日志记录

技术栈：FastAPI + DuckDB + JWT认证 + Stripe Checkout
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config.settings import settings
from .core.database import DatabaseManager, db_manager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError
from .core.logging_config import configure_logging
from .services.export_service import ExportService
from .services.menu_integration_service import MenuIntegrationService
from .services.menu_service import MenuService
from .services.order_service import OrderService
from .services.payment_gateway import PaymentGateway, StripeCheckoutGateway
from .services.session import SessionRegistry
from .services.user_service import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    configure_logging(settings.log_level)
    app.state.db.init_database()
    logger.info("Database initialized at %s", app.state.db.db_path)

    yield

    app.state.db.close()


def create_app(db: Optional[DatabaseManager] = None,
               gateway: Optional[PaymentGateway] = None,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
    """创建FastAPI应用；数据库、支付网关和时钟可注入（测试用）"""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="School cafeteria weekly ordering API",
        debug=settings.debug,
        lifespan=lifespan
    )

    db = db or db_manager
    clock = clock or datetime.now
    order_service = OrderService(db)
    menu_service = MenuService(db)
    user_service = UserService(db)

    app.state.db = db
    app.state.clock = clock
    app.state.order_service = order_service
    app.state.menu_service = menu_service
    app.state.user_service = user_service
    app.state.integration = MenuIntegrationService(
        order_service, menu_service, gateway or StripeCheckoutGateway(), clock=clock
    )
    app.state.export_service = ExportService(order_service, user_service)
    app.state.sessions = SessionRegistry(db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check():
        try:
            app.state.db.execute_one("SELECT 1")
            return {
                "status": "healthy",
                "version": settings.api_version,
                "database": "connected"
            }
        except BaseApplicationError as e:
            return {
                "status": "unhealthy",
                "version": settings.api_version,
                "database": f"error: {e.message}"
            }

    @app.get("/")
    async def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "School cafeteria weekly ordering API"
        }

    return app


# 应用实例
app = create_app()
