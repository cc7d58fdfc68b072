"""
选餐存储
内存中按 (日期, 受益人键) 保存选餐，支持新增/清除/查询

规则：
- 同一 (日期, 受益人) 最多一条 Selection
- 午餐、加餐都为空的 Selection 视为不存在，直接删除
- 所有操作都是全函数：清除不存在的键不报错
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.base import Category
from ..models.selection import Beneficiary, MenuItemRef, Selection
from .week_partitioner import week_dates


class SelectionStore:
    """单个会话的选餐存储，假定同一时刻只有一个写入方"""

    def __init__(self, selections: Optional[Iterable[Selection]] = None):
        self._selections: Dict[Tuple[str, str], Selection] = {}
        if selections:
            self.load(selections)

    def upsert(self, date: str, beneficiary: Beneficiary, category: Category,
               item: Optional[MenuItemRef]) -> Optional[Selection]:
        """
        设置某天某受益人的午餐或加餐

        item 为 None 时等同于 clear(date, key, category)
        Returns:
            更新后的 Selection；被删除时返回 None
        """
        if item is None:
            self.clear(date, beneficiary.key, category)
            return None

        key = (date, beneficiary.key)
        current = self._selections.get(key)
        if current is None:
            current = Selection(date=date, beneficiary=beneficiary)
        updated = current.with_item(category, item)
        self._selections[key] = updated
        return updated

    def clear(self, date: str, beneficiary_key: str,
              category: Optional[Category] = None) -> None:
        """清除一个类别；不指定类别时删除整条 Selection"""
        key = (date, beneficiary_key)
        current = self._selections.get(key)
        if current is None:
            return

        if category is None:
            del self._selections[key]
            return

        updated = current.with_item(category, None)
        if updated.is_empty:
            del self._selections[key]
        else:
            self._selections[key] = updated

    def get(self, date: str, beneficiary_key: str) -> Optional[Selection]:
        return self._selections.get((date, beneficiary_key))

    def all(self) -> List[Selection]:
        """所有非空 Selection，按插入顺序"""
        return list(self._selections.values())

    def clear_all(self) -> None:
        self._selections.clear()

    def load(self, selections: Iterable[Selection]) -> None:
        """用给定的 Selection 替换当前内容（空的会被丢弃）"""
        self._selections = {}
        for selection in selections:
            if not selection.is_empty:
                self._selections[selection.key] = selection

    def remove_week(self, week_start: str) -> int:
        """删除某一周（周一开始）的全部 Selection，返回删除数量"""
        return self.remove_dates(week_dates(week_start))

    def remove_dates(self, dates: Iterable[str]) -> int:
        """删除落在这些日期上的全部 Selection，返回删除数量"""
        targets = set(dates)
        keys = [k for k in self._selections if k[0] in targets]
        for key in keys:
            del self._selections[key]
        return len(keys)

    def snapshot(self) -> List[Dict[str, Any]]:
        """导出为可 JSON 序列化的数据"""
        return [s.model_dump(mode="json") for s in self._selections.values()]

    @classmethod
    def from_snapshot(cls, data: Iterable[Dict[str, Any]]) -> "SelectionStore":
        return cls(Selection.model_validate(item) for item in data or [])

    def __len__(self) -> int:
        return len(self._selections)
