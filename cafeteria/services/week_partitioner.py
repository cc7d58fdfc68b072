"""
按周分组
支付按周一开始的自然周进行，这里把平铺的选餐按各自日期所在周分组
"""

import re
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..core.exceptions import MalformedDateError
from ..models.selection import Selection

DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_service_date(value: str) -> date:
    """
    严格解析 YYYY-MM-DD

    Raises:
        MalformedDateError: 不是合法日期时
    """
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise MalformedDateError(value)
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise MalformedDateError(value)


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_start_for(value: str) -> str:
    """某个日期所在周的周一（ISO 周，周一为第一天）"""
    return monday_of(parse_service_date(value)).strftime(DATE_FORMAT)


def week_dates(week_start: str) -> List[str]:
    """从周一开始的 7 个日期"""
    start = parse_service_date(week_start)
    return [(start + timedelta(days=i)).strftime(DATE_FORMAT) for i in range(7)]


def upcoming_weeks(count: int, today: Optional[date] = None) -> List[str]:
    """从本周开始的 count 个周一"""
    current = monday_of(today or date.today())
    return [(current + timedelta(weeks=i)).strftime(DATE_FORMAT) for i in range(count)]


def partition_by_week(selections: Iterable[Selection]) -> Dict[str, List[Selection]]:
    """
    把选餐按各自日期所在周分组

    - 键按首次出现的顺序排列，组内保持输入顺序
    - 每条 Selection 只属于一个组，所有组合起来等于输入
    - 任一日期无法解析时整体失败，不会丢弃或错分
    """
    groups: Dict[str, List[Selection]] = OrderedDict()
    for selection in selections:
        groups.setdefault(week_start_for(selection.date), []).append(selection)
    return dict(groups)
