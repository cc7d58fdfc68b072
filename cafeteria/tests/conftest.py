"""
测试配置文件
提供测试所需的fixtures：内存数据库、示例用户和菜单、假支付网关、测试客户端

固定时间为 2024-03-01（周五）09:00，因此 2024-03-04 和 2024-03-11 两周都可以订餐
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from ..app import create_app
from ..core.database import DatabaseManager
from ..core.security import create_access_token
from ..models.base import Category, UserType
from ..models.menu import MenuItemCreate
from ..models.user import UserCreate
from ..services.menu_integration_service import MenuIntegrationService
from ..services.menu_service import MenuService
from ..services.order_service import OrderService
from ..services.user_service import UserService
from .factories import FakeGateway

FIXED_NOW = datetime(2024, 3, 1, 9, 0)
WEEK_1 = ["2024-03-04", "2024-03-05", "2024-03-06", "2024-03-07", "2024-03-08"]
WEEK_2 = ["2024-03-11", "2024-03-12", "2024-03-13", "2024-03-14", "2024-03-15"]


@pytest.fixture
def test_db():
    """测试数据库（内存）"""
    db = DatabaseManager(":memory:")
    db.init_database()
    yield db
    db.close()


@pytest.fixture
def user_service(test_db):
    return UserService(test_db)


@pytest.fixture
def menu_service(test_db):
    return MenuService(test_db)


@pytest.fixture
def order_service(test_db):
    return OrderService(test_db)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def integration(order_service, menu_service, gateway):
    return MenuIntegrationService(order_service, menu_service, gateway, clock=lambda: FIXED_NOW)


@pytest.fixture
def guardian(test_db, user_service):
    """监护人，登记了 child-1 (Sofia) 和 child-2 (Mateo)"""
    user = user_service.create_user(UserCreate(
        email="ana.parent@example.com", name="Ana Parent", user_type=UserType.GUARDIAN,
    ))
    test_db.execute_query(
        "INSERT INTO dependents(id, user_id, name, course) VALUES (?,?,?,?), (?,?,?,?)",
        ["child-1", user.id, "Sofia", "3A", "child-2", user.id, "Mateo", "1B"],
    )
    return user_service.get_user(user.id)


@pytest.fixture
def staff(user_service):
    """教职工"""
    return user_service.create_user(UserCreate(
        email="teacher@example.com", name="Luis Staff", user_type=UserType.STAFF,
    ))


@pytest.fixture
def admin_user(user_service):
    """管理员"""
    return user_service.create_user(UserCreate(
        email="admin@example.com", name="Admin", user_type=UserType.STAFF, is_admin=True,
    ))


@pytest.fixture
def menu(menu_service):
    """
    两周工作日的已发布菜单

    Returns:
        dict: (date, category) -> MenuItem；午餐没有单独定价，加餐单独定价 2000
    """
    items = {}
    for index, day in enumerate(WEEK_1 + WEEK_2):
        items[(day, Category.LUNCH)] = menu_service.create_menu_item(MenuItemCreate(
            code=f"L{index}", name=f"Lunch {day}", category=Category.LUNCH,
            service_date=day, published=True,
        ))
        items[(day, Category.SNACK)] = menu_service.create_menu_item(MenuItemCreate(
            code=f"S{index}", name=f"Snack {day}", category=Category.SNACK,
            price=2000, service_date=day, published=True,
        ))
    return items


@pytest.fixture
def app_instance(test_db, gateway):
    """测试应用"""
    return create_app(db=test_db, gateway=gateway, clock=lambda: FIXED_NOW)


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    with TestClient(app_instance) as test_client:
        yield test_client


def bearer(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def guardian_headers(guardian):
    return bearer(guardian)


@pytest.fixture
def staff_headers(staff):
    return bearer(staff)


@pytest.fixture
def admin_headers(admin_user):
    return bearer(admin_user)
