"""
选餐路由
修改当前会话中的选餐；每次修改后写入草稿
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.exceptions import InvalidSelectionError
from ...models.selection import Beneficiary, Selection
from ...models.user import User
from ...schemas.selection import SelectionSummaryResponse, SelectionUpdateRequest, WeekTotal
from ...services.menu_service import MenuService
from ...services.order_summary import summarize, summarize_by_date
from ...services.session import OrderSession, SessionRegistry
from ...services.week_partitioner import parse_service_date, partition_by_week
from ..deps import get_menu_service, get_now, get_order_session, get_registry

router = APIRouter()


def _sorted(selections: List[Selection]) -> List[Selection]:
    return sorted(selections, key=lambda s: s.date)


def _resolve_beneficiary(user: User, key: Optional[str]) -> Beneficiary:
    if key is None and user.is_staff:
        return user.beneficiaries()[0]
    if key is None:
        raise InvalidSelectionError("beneficiary_key is required for guardian accounts")
    beneficiary = user.find_beneficiary(key)
    if beneficiary is None:
        raise InvalidSelectionError(f"{key} is not registered on this account", {"beneficiary_key": key})
    return beneficiary


@router.get("")
def list_selections(session: OrderSession = Depends(get_order_session)):
    selections = _sorted(session.store.all())
    return create_success_response([s.model_dump(mode="json") for s in selections])


@router.put("")
def update_selection(req: SelectionUpdateRequest,
                     session: OrderSession = Depends(get_order_session),
                     registry: SessionRegistry = Depends(get_registry),
                     menus: MenuService = Depends(get_menu_service),
                     now: datetime = Depends(get_now)):
    """
    设置或清除一个类别

    设置时校验：可订日期、本周截止时间、菜单项属于该日期和类别；价格在此时快照
    """
    parse_service_date(req.date)
    beneficiary = _resolve_beneficiary(session.user, req.beneficiary_key)

    if req.item_id is None:
        session.store.clear(req.date, beneficiary.key, req.category)
        selection = None
    else:
        if not menus.is_day_ordering_allowed(req.date, now.date()):
            raise InvalidSelectionError(f"Ordering is not available for {req.date}")
        if not menus.resolve_week(req.date, now).is_ordering_allowed:
            raise InvalidSelectionError(f"Ordering for the week of {req.date} is closed")
        item = menus.resolve_item(req.item_id, req.date, req.category, session.user.user_type)
        selection = session.store.upsert(req.date, beneficiary, req.category, item)

    registry.save(session)
    return create_success_response(selection.model_dump(mode="json") if selection else None)


@router.delete("/{service_date}")
def clear_date(service_date: str,
               beneficiary_key: Optional[str] = Query(None, description="只清除该受益人"),
               session: OrderSession = Depends(get_order_session),
               registry: SessionRegistry = Depends(get_registry)):
    parse_service_date(service_date)
    if beneficiary_key is None:
        removed = session.store.remove_dates([service_date])
    else:
        removed = 1 if session.store.get(service_date, beneficiary_key) else 0
        session.store.clear(service_date, beneficiary_key)
    registry.save(session)
    return create_success_response({"removed": removed})


@router.delete("")
def clear_all(session: OrderSession = Depends(get_order_session),
              registry: SessionRegistry = Depends(get_registry)):
    session.store.clear_all()
    registry.save(session)
    return create_success_response(None, "Selections cleared")


@router.get("/summary")
def selection_summary(session: OrderSession = Depends(get_order_session)):
    """订单确认页：总计、按受益人、按日期、按周"""
    selections = _sorted(session.store.all())
    summary = summarize(selections)
    weeks = [
        WeekTotal(week_start=ws, selections=len(group), total=summarize(group).total)
        for ws, group in partition_by_week(selections).items()
    ]
    response = SelectionSummaryResponse(
        total_lunches=summary.total_lunches,
        total_snacks=summary.total_snacks,
        subtotal_lunch=summary.subtotal_lunch,
        subtotal_snack=summary.subtotal_snack,
        total=summary.total,
        per_beneficiary=summary.per_beneficiary,
        by_date=summarize_by_date(selections),
        weeks=weeks,
        selections=summary.selections,
    )
    return create_success_response(response.model_dump(mode="json"))
