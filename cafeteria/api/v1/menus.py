"""
菜单路由
用户端：周列表、周菜单、日菜单（价格按当前用户类型）
管理端：菜单项增删改、整周发布/复制/删除、默认点心
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import get_current_user, require_admin
from ...models.menu import MenuItemCreate, MenuItemUpdate
from ...models.user import User
from ...schemas.menu import (
    DefaultSnacksRequest,
    WeekDuplicateRequest,
    WeekMenuResponse,
    WeekPublishRequest,
)
from ...services.menu_service import MenuService
from ...services.week_partitioner import week_start_for
from ..deps import get_menu_service, get_now

router = APIRouter()


@router.get("/weeks")
def list_weeks(menus: MenuService = Depends(get_menu_service),
               now: datetime = Depends(get_now),
               user: User = Depends(get_current_user)):
    """本周及之后几周"""
    weeks = menus.upcoming_weeks(now)
    return create_success_response([w.model_dump(mode="json") for w in weeks])


@router.get("/week/{week_start}")
def get_week(week_start: str,
             menus: MenuService = Depends(get_menu_service),
             now: datetime = Depends(get_now),
             user: User = Depends(get_current_user)):
    week = menus.resolve_week(week_start, now)
    days = menus.get_week_menu(week.week_start, user.user_type, now.date())
    return create_success_response(WeekMenuResponse(week=week, days=days).model_dump(mode="json"))


@router.get("/day/{service_date}")
def get_day(service_date: str,
            menus: MenuService = Depends(get_menu_service),
            now: datetime = Depends(get_now),
            user: User = Depends(get_current_user)):
    day = menus.get_day_menu(service_date, user.user_type, now.date())
    return create_success_response(day.model_dump(mode="json"))


# ---- 管理端 ----

@router.get("/items")
def list_items(week_start: str = Query(..., description="周内任意日期"),
               include_inactive: bool = False,
               menus: MenuService = Depends(get_menu_service),
               admin: User = Depends(require_admin)):
    items = menus.list_week_items(week_start, include_inactive)
    return create_success_response([i.model_dump(mode="json") for i in items])


@router.post("/items")
def create_item(req: MenuItemCreate,
                menus: MenuService = Depends(get_menu_service),
                admin: User = Depends(require_admin)):
    item = menus.create_menu_item(req, actor_id=admin.id)
    return create_success_response(item.model_dump(mode="json"), "Menu item created")


@router.put("/items/{item_id}")
def update_item(item_id: int, req: MenuItemUpdate,
                menus: MenuService = Depends(get_menu_service),
                admin: User = Depends(require_admin)):
    item = menus.update_menu_item(item_id, req, actor_id=admin.id)
    return create_success_response(item.model_dump(mode="json"), "Menu item updated")


@router.delete("/items/{item_id}")
def delete_item(item_id: int,
                menus: MenuService = Depends(get_menu_service),
                admin: User = Depends(require_admin)):
    menus.delete_menu_item(item_id, actor_id=admin.id)
    return create_success_response({"id": item_id}, "Menu item deleted")


@router.post("/week/{week_start}/publish")
def publish_week(week_start: str, req: Optional[WeekPublishRequest] = None,
                 menus: MenuService = Depends(get_menu_service),
                 admin: User = Depends(require_admin)):
    published = req.published if req is not None else True
    count = menus.set_week_published(week_start, published, actor_id=admin.id)
    return create_success_response({
        "week_start": week_start_for(week_start),
        "published": published,
        "items": count,
    })


@router.post("/week/{week_start}/duplicate")
def duplicate_week(week_start: str, req: WeekDuplicateRequest,
                   menus: MenuService = Depends(get_menu_service),
                   admin: User = Depends(require_admin)):
    """把 source_week 的菜单复制到本周（未发布）"""
    count = menus.duplicate_week_menu(req.source_week, week_start, actor_id=admin.id)
    return create_success_response({
        "source_week": week_start_for(req.source_week),
        "week_start": week_start_for(week_start),
        "items": count,
    }, f"{count} menu items copied")


@router.delete("/week/{week_start}")
def delete_week(week_start: str,
                menus: MenuService = Depends(get_menu_service),
                admin: User = Depends(require_admin)):
    count = menus.delete_week_menu(week_start, actor_id=admin.id)
    return create_success_response({"week_start": week_start_for(week_start), "items": count},
                                   f"{count} menu items deleted")


# ---- 默认点心 ----

@router.get("/default-snacks")
def list_default_snacks(menus: MenuService = Depends(get_menu_service),
                        admin: User = Depends(require_admin)):
    return create_success_response([s.model_dump(mode="json") for s in menus.get_default_snacks()])


@router.put("/default-snacks")
def save_default_snacks(req: DefaultSnacksRequest,
                        menus: MenuService = Depends(get_menu_service),
                        admin: User = Depends(require_admin)):
    snacks = menus.save_default_snacks(req.snacks, actor_id=admin.id)
    return create_success_response([s.model_dump(mode="json") for s in snacks], "Default snacks saved")


@router.post("/default-snacks/reset")
def reset_default_snacks(menus: MenuService = Depends(get_menu_service),
                         admin: User = Depends(require_admin)):
    snacks = menus.reset_default_snacks(actor_id=admin.id)
    return create_success_response([s.model_dump(mode="json") for s in snacks], "Default snacks reset")


@router.post("/week/{week_start}/default-snacks")
def apply_default_snacks_week(week_start: str,
                              menus: MenuService = Depends(get_menu_service),
                              admin: User = Depends(require_admin)):
    count = menus.create_default_snacks_week(week_start, actor_id=admin.id)
    return create_success_response({"week_start": week_start_for(week_start), "items": count},
                                   f"{count} default snacks created")


@router.post("/day/{service_date}/default-snacks")
def apply_default_snacks_day(service_date: str,
                             menus: MenuService = Depends(get_menu_service),
                             admin: User = Depends(require_admin)):
    count = menus.create_default_snacks_day(service_date, actor_id=admin.id)
    return create_success_response({"date": service_date, "items": count},
                                   f"{count} default snacks created")
