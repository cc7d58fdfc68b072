"""
菜单服务
周信息计算、每日菜单查询以及管理端的菜单项维护

- resolve_week 对给定日期是确定的（today 可注入）
- 菜单项没有单独定价时，按用户类型使用配置中的默认价
- 整周复制、整周删除、按默认点心模板批量生成点心，生成的菜单项都是未发布状态
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from ..config.settings import settings
from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import InvalidSelectionError, MenuItemNotFoundError, ValidationError
from ..models.base import Category, UserType
from ..models.menu import DayMenu, DefaultSnack, MenuItem, MenuItemCreate, MenuItemUpdate, WeekInfo
from ..models.selection import MenuItemRef
from .week_partitioner import (
    DATE_FORMAT,
    monday_of,
    parse_service_date,
    upcoming_weeks,
    week_dates,
    week_start_for,
)

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

MENU_COLUMNS = (
    "id, code, name, description, category, price, service_date, week_start, "
    "published, active, created_at, updated_at"
)

# 还没有保存配置时使用的默认点心
BUILTIN_DEFAULT_SNACKS = [
    DefaultSnack(code="C1", name="Yogurt with granola + juice 200 cc", price=3100),
    DefaultSnack(code="C2", name="Yogurt with granola + flavoured water 200 cc", price=3100),
    DefaultSnack(code="C3", name="Chicken mayo sandwich + juice 200 cc", price=2800),
    DefaultSnack(code="C4", name="Turkey ham and cheese sandwich + semi-skimmed milk 200 cc", price=2850),
    DefaultSnack(code="C5", name="Healthy cereal bar + juice 200 cc", price=1500),
    DefaultSnack(code="C6", name="Healthy cereal bar + semi-skimmed milk", price=1800),
]


class MenuService:
    """菜单服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    # ---- 周信息 ----

    def resolve_week(self, value: str, now: Optional[datetime] = None) -> WeekInfo:
        """
        计算日期所在周的信息

        订餐规则：本周在截止时间（默认周三 13:00）之前可订，之后的周可订，过去的周不可订
        """
        now = now or datetime.now()
        start = parse_service_date(week_start_for(value))
        end = start + timedelta(days=6)
        current_start = monday_of(now.date())

        deadline = datetime.combine(
            current_start + timedelta(days=settings.order_deadline_weekday),
            time(hour=settings.order_deadline_hour),
        )
        is_current = start == current_start
        if is_current:
            allowed = now <= deadline
        else:
            allowed = start > current_start

        return WeekInfo(
            week_start=start.strftime(DATE_FORMAT),
            week_end=end.strftime(DATE_FORMAT),
            label=self.week_label(start, end),
            week_number=start.isocalendar()[1],
            year=start.year,
            is_current_week=is_current,
            is_ordering_allowed=allowed,
            order_deadline=deadline,
        )

    def upcoming_weeks(self, now: Optional[datetime] = None) -> List[WeekInfo]:
        now = now or datetime.now()
        return [self.resolve_week(ws, now) for ws in upcoming_weeks(settings.weeks_ahead, now.date())]

    @staticmethod
    def week_label(start: date, end: date) -> str:
        if start.month == end.month:
            return f"{start.day} - {end.day} {end:%B %Y}"
        return f"{start.day} {start:%B} - {end.day} {end:%B %Y}"

    @staticmethod
    def day_name(value: str) -> str:
        return DAY_NAMES[parse_service_date(value).weekday()]

    @staticmethod
    def is_day_ordering_allowed(value: str, today: Optional[date] = None) -> bool:
        """过去的日期和周末不可订餐"""
        day = parse_service_date(value)
        today = today or date.today()
        return day >= today and day.weekday() < 5

    # ---- 菜单查询 ----

    def get_day_menu(self, value: str, user_type: UserType,
                     today: Optional[date] = None) -> DayMenu:
        """某天已发布的菜单，价格已按用户类型解析"""
        parse_service_date(value)
        items = self._query_items(
            "service_date = CAST(? AS DATE) AND active AND published", [value]
        )
        return self._build_day(value, items, user_type, today)

    def get_week_menu(self, week_start: str, user_type: UserType,
                      today: Optional[date] = None) -> List[DayMenu]:
        """一周七天的菜单（没有菜单的日子也返回空的 DayMenu）"""
        start = week_start_for(week_start)
        items = self._query_items(
            "week_start = CAST(? AS DATE) AND active AND published", [start]
        )
        by_date: Dict[str, List[MenuItem]] = {}
        for item in items:
            by_date.setdefault(item.service_date, []).append(item)
        return [self._build_day(d, by_date.get(d, []), user_type, today) for d in week_dates(start)]

    def has_menus_for_week(self, week_start: str) -> bool:
        row = self.db.execute_one(
            "SELECT COUNT(*) FROM menu_items WHERE week_start = CAST(? AS DATE) AND active AND published",
            [week_start_for(week_start)],
        )
        return bool(row and row[0])

    def resolve_item(self, item_id: str, service_date: str, category: Category,
                     user_type: UserType) -> MenuItemRef:
        """
        把菜单项解析为带价格快照的引用

        Raises:
            InvalidSelectionError: 菜单项不存在、未发布或不属于该日期/类别时
        """
        try:
            item = self.get_menu_item(int(item_id))
        except (ValueError, MenuItemNotFoundError):
            raise InvalidSelectionError(f"Menu item {item_id} is not available")

        if not (item.active and item.published):
            raise InvalidSelectionError(f"Menu item {item_id} is not available")
        if item.service_date != service_date:
            raise InvalidSelectionError(
                f"Menu item {item_id} is served on {item.service_date}, not {service_date}")
        if Category(item.category) != Category(category):
            raise InvalidSelectionError(f"Menu item {item_id} is not a {Category(category).value}")
        return item.to_ref(self.price_for(item, user_type))

    @staticmethod
    def price_for(item: MenuItem, user_type: UserType) -> int:
        if item.price is not None and item.price > 0:
            return item.price
        return settings.price_table()[UserType(user_type).value][Category(item.category).value]

    # ---- 管理端 ----

    def get_menu_item(self, item_id: int) -> MenuItem:
        items = self._query_items("id = ?", [item_id])
        if not items:
            raise MenuItemNotFoundError(item_id)
        return items[0]

    def list_week_items(self, week_start: str, include_inactive: bool = False) -> List[MenuItem]:
        condition = "week_start = CAST(? AS DATE)"
        if not include_inactive:
            condition += " AND active"
        return self._query_items(condition, [week_start_for(week_start)])

    def create_menu_item(self, data: MenuItemCreate, actor_id: Optional[int] = None) -> MenuItem:
        """创建菜单项"""
        week_start = week_start_for(data.service_date)
        with self.db.transaction() as conn:
            item_id = self._insert_item(conn, data.code, data.name, data.description, data.category,
                                        data.price, data.service_date, week_start, data.published)
            self.db.write_log("menu_item_create", {"item_id": item_id, **data.model_dump(mode="json")},
                              actor_id=actor_id, conn=conn)
        return self.get_menu_item(item_id)

    def update_menu_item(self, item_id: int, data: MenuItemUpdate,
                         actor_id: Optional[int] = None) -> MenuItem:
        """更新菜单项；只更新请求中给出的字段"""
        self.get_menu_item(item_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
        if changes:
            assignments = ", ".join(f"{field} = ?" for field in changes)
            with self.db.transaction() as conn:
                conn.execute(
                    f"UPDATE menu_items SET {assignments}, updated_at = now() WHERE id = ?",
                    [*changes.values(), item_id],
                )
                self.db.write_log("menu_item_update", {"item_id": item_id, "changes": changes},
                                  actor_id=actor_id, conn=conn)
        return self.get_menu_item(item_id)

    def delete_menu_item(self, item_id: int, actor_id: Optional[int] = None) -> None:
        """软删除，已下单的订单行保留原有快照"""
        self.get_menu_item(item_id)
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE menu_items SET active = FALSE, updated_at = now() WHERE id = ?", [item_id]
            )
            self.db.write_log("menu_item_delete", {"item_id": item_id}, actor_id=actor_id, conn=conn)

    def set_week_published(self, week_start: str, published: bool,
                           actor_id: Optional[int] = None) -> int:
        """发布/撤回整周菜单，返回受影响的菜单项数量"""
        start = week_start_for(week_start)
        with self.db.transaction() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM menu_items WHERE week_start = CAST(? AS DATE) AND active",
                [start],
            ).fetchone()[0]
            conn.execute(
                "UPDATE menu_items SET published = ?, updated_at = now() "
                "WHERE week_start = CAST(? AS DATE) AND active",
                [published, start],
            )
            self.db.write_log("menu_week_publish", {"week_start": start, "published": published,
                                                    "items": count}, actor_id=actor_id, conn=conn)
        logger.info("Week %s published=%s (%d items)", start, published, count)
        return count

    def duplicate_week_menu(self, source_week: str, target_week: str,
                            actor_id: Optional[int] = None) -> int:
        """
        把一周的菜单复制到另一周，日期按周偏移，复制出的菜单项未发布

        Raises:
            ValidationError: 源周没有菜单、目标周已有菜单或两周相同时
        """
        source = week_start_for(source_week)
        target = week_start_for(target_week)
        if source == target:
            raise ValidationError("Source and target weeks must be different")

        items = self.list_week_items(source)
        if not items:
            raise ValidationError(f"The week of {source} has no menu to copy")
        if self.list_week_items(target):
            raise ValidationError(f"The week of {target} already has a menu; delete it first",
                                  "DUPLICATE_RESOURCE")

        offset = parse_service_date(target) - parse_service_date(source)
        with self.db.transaction() as conn:
            for item in items:
                service_date = (parse_service_date(item.service_date) + offset).strftime(DATE_FORMAT)
                self._insert_item(conn, item.code, item.name, item.description, item.category,
                                  item.price, service_date, target, published=False)
            self.db.write_log("menu_week_duplicate", {"source_week": source, "target_week": target,
                                                      "items": len(items)}, actor_id=actor_id, conn=conn)
        logger.info("Copied %d menu items from week %s to %s", len(items), source, target)
        return len(items)

    def delete_week_menu(self, week_start: str, actor_id: Optional[int] = None) -> int:
        """
        删除整周菜单（软删除），返回删除的菜单项数量

        Raises:
            ValidationError: 该周没有菜单时
        """
        start = week_start_for(week_start)
        count = len(self.list_week_items(start))
        if not count:
            raise ValidationError(f"The week of {start} has no menu to delete")
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE menu_items SET active = FALSE, updated_at = now() "
                "WHERE week_start = CAST(? AS DATE) AND active",
                [start],
            )
            self.db.write_log("menu_week_delete", {"week_start": start, "items": count},
                              actor_id=actor_id, conn=conn)
        logger.info("Deleted %d menu items of week %s", count, start)
        return count

    # ---- 默认点心 ----

    def get_default_snacks(self) -> List[DefaultSnack]:
        """已保存的默认点心；还没有配置时返回内置的默认值"""
        rows = self.db.fetch_dicts("SELECT code, name, price, active FROM default_snacks ORDER BY code")
        if not rows:
            return [snack.model_copy() for snack in BUILTIN_DEFAULT_SNACKS]
        return [DefaultSnack(**row) for row in rows]

    def save_default_snacks(self, snacks: List[DefaultSnack],
                            actor_id: Optional[int] = None) -> List[DefaultSnack]:
        """整体替换默认点心配置"""
        codes = [s.code for s in snacks]
        if len(set(codes)) != len(codes):
            raise ValidationError("Default snack codes must be unique")
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM default_snacks")
            for snack in snacks:
                conn.execute(
                    "INSERT INTO default_snacks(code, name, price, active) VALUES (?,?,?,?)",
                    [snack.code, snack.name, snack.price, snack.active],
                )
            self.db.write_log("default_snacks_save", {"codes": codes}, actor_id=actor_id, conn=conn)
        return self.get_default_snacks()

    def reset_default_snacks(self, actor_id: Optional[int] = None) -> List[DefaultSnack]:
        return self.save_default_snacks(list(BUILTIN_DEFAULT_SNACKS), actor_id=actor_id)

    def create_default_snacks_week(self, week_start: str, actor_id: Optional[int] = None) -> int:
        """
        为一周的周一到周五生成默认点心菜单项（未发布）

        Raises:
            ValidationError: 该周已有点心，或没有启用的默认点心时
        """
        start = week_start_for(week_start)
        existing = self._query_items(
            "week_start = CAST(? AS DATE) AND active AND category = ?", [start, Category.SNACK.value]
        )
        if existing:
            raise ValidationError(f"The week of {start} already has snacks", "DUPLICATE_RESOURCE")
        return self._create_default_snacks(start, week_dates(start)[:5], actor_id)

    def create_default_snacks_day(self, service_date: str, actor_id: Optional[int] = None) -> int:
        """
        为某一天生成默认点心菜单项（未发布）

        Raises:
            ValidationError: 周末、当天已有点心，或没有启用的默认点心时
        """
        day = parse_service_date(service_date)
        if day.weekday() >= 5:
            raise ValidationError(f"{service_date} is a weekend day")
        existing = self._query_items(
            "service_date = CAST(? AS DATE) AND active AND category = ?",
            [service_date, Category.SNACK.value],
        )
        if existing:
            raise ValidationError(f"{service_date} already has snacks", "DUPLICATE_RESOURCE")
        return self._create_default_snacks(week_start_for(service_date), [service_date], actor_id)

    # ---- 内部 ----

    def _create_default_snacks(self, week_start: str, dates: List[str],
                               actor_id: Optional[int]) -> int:
        snacks = [s for s in self.get_default_snacks() if s.active]
        if not snacks:
            raise ValidationError("No default snacks are configured")
        with self.db.transaction() as conn:
            for service_date in dates:
                for snack in snacks:
                    self._insert_item(conn, snack.code, snack.name, None, Category.SNACK,
                                      snack.price, service_date, week_start, published=False)
            count = len(dates) * len(snacks)
            self.db.write_log("default_snacks_apply", {"week_start": week_start, "dates": dates,
                                                       "items": count}, actor_id=actor_id, conn=conn)
        logger.info("Created %d default snack items for %s", count, ", ".join(dates))
        return count

    @staticmethod
    def _insert_item(conn, code: str, name: str, description: Optional[str], category: Category,
                     price: Optional[int], service_date: str, week_start: str,
                     published: bool) -> int:
        return conn.execute(
            """
            INSERT INTO menu_items(code, name, description, category, price,
                                   service_date, week_start, published)
            VALUES (?,?,?,?,?,CAST(? AS DATE),CAST(? AS DATE),?) RETURNING id
            """,
            [code, name, description, Category(category).value, price,
             service_date, week_start, published],
        ).fetchone()[0]

    def _query_items(self, condition: str, params: list) -> List[MenuItem]:
        rows = self.db.fetch_dicts(
            f"SELECT {MENU_COLUMNS} FROM menu_items WHERE {condition} ORDER BY service_date, category, code",
            params,
        )
        for row in rows:
            row["service_date"] = row["service_date"].strftime(DATE_FORMAT)
            row["week_start"] = row["week_start"].strftime(DATE_FORMAT)
        return [MenuItem(**row) for row in rows]

    def _build_day(self, value: str, items: List[MenuItem], user_type: UserType,
                   today: Optional[date]) -> DayMenu:
        lunch, snack = [], []
        for item in items:
            ref = item.to_ref(self.price_for(item, user_type))
            if Category(item.category) == Category.LUNCH:
                lunch.append(ref)
            else:
                snack.append(ref)
        return DayMenu(
            date=value,
            day_name=self.day_name(value),
            lunch_options=lunch,
            snack_options=snack,
            is_available=bool(items) and self.is_day_ordering_allowed(value, today),
        )
