"""
菜单服务测试
"""

from datetime import date, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import (
    InvalidSelectionError,
    MalformedDateError,
    MenuItemNotFoundError,
    ValidationError,
)
from ..models.base import Category, UserType
from ..models.menu import DefaultSnack, MenuItemCreate, MenuItemUpdate


class TestResolveWeek:
    """周信息和截止时间"""

    def test_future_week_is_open(self, menu_service):
        week = menu_service.resolve_week("2024-03-06", datetime(2024, 3, 1, 9, 0))

        assert week.week_start == "2024-03-04"
        assert week.week_end == "2024-03-10"
        assert week.label == "4 - 10 March 2024"
        assert week.week_number == 10
        assert not week.is_current_week
        assert week.is_ordering_allowed

    def test_current_week_open_until_wednesday_deadline(self, menu_service):
        before = menu_service.resolve_week("2024-03-04", datetime(2024, 3, 6, 12, 59))
        after = menu_service.resolve_week("2024-03-04", datetime(2024, 3, 6, 13, 1))

        assert before.is_current_week and before.is_ordering_allowed
        assert after.is_current_week and not after.is_ordering_allowed
        assert before.order_deadline == datetime(2024, 3, 6, 13, 0)

    def test_past_week_is_closed(self, menu_service):
        assert not menu_service.resolve_week("2024-02-26", datetime(2024, 3, 4, 8, 0)).is_ordering_allowed

    def test_label_across_months(self, menu_service):
        week = menu_service.resolve_week("2024-02-28", datetime(2024, 2, 1))
        assert week.label == "26 February - 3 March 2024"

    def test_deterministic(self, menu_service):
        now = datetime(2024, 3, 1, 9, 0)
        assert menu_service.resolve_week("2024-03-07", now) == menu_service.resolve_week("2024-03-07", now)

    def test_upcoming_weeks(self, menu_service):
        weeks = menu_service.upcoming_weeks(datetime(2024, 3, 1, 9, 0))
        assert [w.week_start for w in weeks] == ["2024-02-26", "2024-03-04", "2024-03-11", "2024-03-18"]

    def test_malformed_date(self, menu_service):
        with pytest.raises(MalformedDateError):
            menu_service.resolve_week("2024-13-01")

    def test_day_ordering_rules(self, menu_service):
        today = date(2024, 3, 5)
        assert menu_service.is_day_ordering_allowed("2024-03-05", today)
        assert not menu_service.is_day_ordering_allowed("2024-03-04", today)
        assert not menu_service.is_day_ordering_allowed("2024-03-09", today)


class TestMenus:
    """菜单查询和价格"""

    def test_day_menu_prices_by_user_type(self, menu_service, menu):
        guardian_day = menu_service.get_day_menu("2024-03-04", UserType.GUARDIAN, date(2024, 3, 1))
        staff_day = menu_service.get_day_menu("2024-03-04", UserType.STAFF, date(2024, 3, 1))

        assert guardian_day.day_name == "Monday"
        assert guardian_day.is_available
        assert [o.price for o in guardian_day.lunch_options] == [5500]
        assert [o.price for o in staff_day.lunch_options] == [4875]
        # 单独定价的加餐不受用户类型影响
        assert [o.price for o in staff_day.snack_options] == [2000]

    def test_unpublished_items_hidden(self, menu_service, menu):
        menu_service.create_menu_item(MenuItemCreate(
            code="X1", name="Draft", category=Category.LUNCH, service_date="2024-03-04",
        ))
        day = menu_service.get_day_menu("2024-03-04", UserType.GUARDIAN, date(2024, 3, 1))
        assert [o.name for o in day.lunch_options] == ["Lunch 2024-03-04"]

    def test_week_menu_has_seven_days(self, menu_service, menu):
        days = menu_service.get_week_menu("2024-03-06", UserType.GUARDIAN, date(2024, 3, 1))

        assert [d.date for d in days][0] == "2024-03-04"
        assert len(days) == 7
        assert days[5].day_name == "Saturday"
        assert not days[5].has_items
        assert not days[5].is_available

    def test_resolve_item(self, menu_service, menu):
        lunch = menu[("2024-03-05", Category.LUNCH)]
        ref = menu_service.resolve_item(str(lunch.id), "2024-03-05", Category.LUNCH, UserType.STAFF)

        assert ref.id == str(lunch.id)
        assert ref.price == 4875

    def test_resolve_item_rejects_wrong_date_or_category(self, menu_service, menu):
        lunch = menu[("2024-03-05", Category.LUNCH)]
        with pytest.raises(InvalidSelectionError):
            menu_service.resolve_item(str(lunch.id), "2024-03-06", Category.LUNCH, UserType.STAFF)
        with pytest.raises(InvalidSelectionError):
            menu_service.resolve_item(str(lunch.id), "2024-03-05", Category.SNACK, UserType.STAFF)
        with pytest.raises(InvalidSelectionError):
            menu_service.resolve_item("9999", "2024-03-05", Category.LUNCH, UserType.STAFF)


class TestMenuAdmin:
    """管理端维护"""

    def test_update_only_given_fields(self, menu_service, menu):
        lunch = menu[("2024-03-04", Category.LUNCH)]
        updated = menu_service.update_menu_item(lunch.id, MenuItemUpdate(price=6000))

        assert updated.price == 6000
        assert updated.name == lunch.name

    def test_soft_delete(self, menu_service, menu):
        lunch = menu[("2024-03-04", Category.LUNCH)]
        menu_service.delete_menu_item(lunch.id)

        assert not menu_service.get_menu_item(lunch.id).active
        assert menu_service.get_day_menu("2024-03-04", UserType.GUARDIAN).lunch_options == []

    def test_publish_week(self, menu_service, menu):
        count = menu_service.set_week_published("2024-03-06", False)

        assert count == 10
        assert not menu_service.has_menus_for_week("2024-03-04")
        assert menu_service.has_menus_for_week("2024-03-11")

    def test_admin_changes_are_logged(self, menu_service, test_db, menu):
        rows = test_db.execute_query("SELECT COUNT(*) FROM logs WHERE action = 'menu_item_create'")
        assert rows[0][0] == len(menu)

    def test_missing_item(self, menu_service):
        with pytest.raises(MenuItemNotFoundError):
            menu_service.get_menu_item(42)

    def test_update_rejects_explicit_null_name(self):
        with pytest.raises(PydanticValidationError):
            MenuItemUpdate.model_validate({"name": None})
        with pytest.raises(PydanticValidationError):
            MenuItemUpdate.model_validate({"code": None})
        assert MenuItemUpdate.model_validate({"price": 100}).model_dump(exclude_unset=True) == {"price": 100}


class TestWeekMenuCopy:
    """整周复制和删除"""

    def test_duplicate_shifts_dates_and_starts_unpublished(self, menu_service, menu):
        count = menu_service.duplicate_week_menu("2024-03-06", "2024-03-20")

        copied = menu_service.list_week_items("2024-03-18")
        assert count == 10
        assert len(copied) == 10
        assert sorted({i.service_date for i in copied}) == [
            "2024-03-18", "2024-03-19", "2024-03-20", "2024-03-21", "2024-03-22",
        ]
        assert not any(i.published for i in copied)
        snack = next(i for i in copied if i.service_date == "2024-03-18" and i.category == Category.SNACK)
        assert snack.price == 2000
        assert snack.name == "Snack 2024-03-04"

    def test_duplicate_requires_empty_target(self, menu_service, menu):
        with pytest.raises(ValidationError) as exc:
            menu_service.duplicate_week_menu("2024-03-04", "2024-03-11")
        assert exc.value.error_code == "DUPLICATE_RESOURCE"

    def test_duplicate_requires_source_menu(self, menu_service):
        with pytest.raises(ValidationError):
            menu_service.duplicate_week_menu("2024-03-04", "2024-03-11")

    def test_delete_week(self, menu_service, menu):
        assert menu_service.delete_week_menu("2024-03-04") == 10

        assert menu_service.list_week_items("2024-03-04") == []
        assert menu_service.has_menus_for_week("2024-03-11")
        with pytest.raises(ValidationError):
            menu_service.delete_week_menu("2024-03-04")

    def test_deleted_week_can_receive_a_copy(self, menu_service, menu):
        menu_service.delete_week_menu("2024-03-11")
        assert menu_service.duplicate_week_menu("2024-03-04", "2024-03-11") == 10


class TestDefaultSnacks:
    """默认点心模板"""

    def test_builtin_defaults_until_saved(self, menu_service):
        snacks = menu_service.get_default_snacks()
        assert [s.code for s in snacks] == ["C1", "C2", "C3", "C4", "C5", "C6"]

    def test_save_replaces_configuration(self, menu_service):
        menu_service.save_default_snacks([
            DefaultSnack(code="F1", name="Fruit cup", price=1200),
            DefaultSnack(code="F2", name="Muffin", price=1500, active=False),
        ])
        assert [(s.code, s.active) for s in menu_service.get_default_snacks()] == [("F1", True), ("F2", False)]

        menu_service.reset_default_snacks()
        assert len(menu_service.get_default_snacks()) == 6

    def test_save_rejects_duplicate_codes(self, menu_service):
        with pytest.raises(ValidationError):
            menu_service.save_default_snacks([
                DefaultSnack(code="F1", name="Fruit cup", price=1200),
                DefaultSnack(code="F1", name="Muffin", price=1500),
            ])

    def test_week_gets_active_snacks_on_weekdays(self, menu_service):
        menu_service.save_default_snacks([
            DefaultSnack(code="F1", name="Fruit cup", price=1200),
            DefaultSnack(code="F2", name="Muffin", price=1500, active=False),
        ])
        count = menu_service.create_default_snacks_week("2024-03-20")

        items = menu_service.list_week_items("2024-03-18")
        assert count == 5
        assert [i.service_date for i in items] == [
            "2024-03-18", "2024-03-19", "2024-03-20", "2024-03-21", "2024-03-22",
        ]
        assert all(i.category == Category.SNACK and i.code == "F1" and i.price == 1200 for i in items)
        assert not any(i.published for i in items)

    def test_week_with_snacks_is_rejected(self, menu_service, menu):
        with pytest.raises(ValidationError):
            menu_service.create_default_snacks_week("2024-03-04")

    def test_day(self, menu_service):
        count = menu_service.create_default_snacks_day("2024-03-19")

        items = menu_service.list_week_items("2024-03-18")
        assert count == 6
        assert {i.service_date for i in items} == {"2024-03-19"}
        with pytest.raises(ValidationError):
            menu_service.create_default_snacks_day("2024-03-19")

    def test_day_rejects_weekend(self, menu_service):
        with pytest.raises(ValidationError):
            menu_service.create_default_snacks_day("2024-03-23")

    def test_no_active_defaults(self, menu_service):
        menu_service.save_default_snacks([DefaultSnack(code="F1", name="Fruit cup", price=1200, active=False)])
        with pytest.raises(ValidationError):
            menu_service.create_default_snacks_week("2024-03-18")
