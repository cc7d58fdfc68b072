"""
订餐会话
每个登录用户一个 OrderSession（用户 + 选餐存储），显式传给支付编排器

生命周期：登录后创建；登出或支付成功跳转后 reset。
SessionRegistry 把每个会话的选餐镜像到 selection_drafts 表，服务重启后可以恢复草稿。
"""

import json
import logging
import threading
from typing import Dict, Optional

from ..core.database import DatabaseManager, db_manager
from ..models.user import User
from .selection_store import SelectionStore

logger = logging.getLogger(__name__)


class OrderSession:
    """一个用户的订餐上下文"""

    def __init__(self, user: User, store: Optional[SelectionStore] = None):
        self.user = user
        self.store = store if store is not None else SelectionStore()
        # 最近一次支付尝试（PaymentOrchestrator），供 retry 使用
        self.payment_attempt = None

    @property
    def user_id(self) -> int:
        return self.user.id

    def reset(self) -> None:
        self.store.clear_all()
        self.payment_attempt = None


class SessionRegistry:
    """按用户ID保存会话，并把草稿写入数据库"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager
        self._sessions: Dict[int, OrderSession] = {}
        self._lock = threading.Lock()

    def get(self, user: User) -> OrderSession:
        """取得用户的会话；内存中没有时从草稿恢复"""
        with self._lock:
            session = self._sessions.get(user.id)
            if session is None:
                session = OrderSession(user, self.restore(user.id))
                self._sessions[user.id] = session
            else:
                # 账户信息（如孩子列表）可能已变化
                session.user = user
            return session

    def save(self, session: OrderSession) -> None:
        """把会话的选餐写入草稿；空会话直接删除草稿"""
        if not len(session.store):
            self._delete_draft(session.user_id)
            return
        payload = json.dumps(session.store.snapshot())
        self.db.execute_query(
            "INSERT OR REPLACE INTO selection_drafts(user_id, payload_json, updated_at) VALUES (?, ?, now())",
            [session.user_id, payload],
        )

    def restore(self, user_id: int) -> SelectionStore:
        row = self.db.execute_one(
            "SELECT payload_json FROM selection_drafts WHERE user_id = ?", [user_id]
        )
        if not row or not row[0]:
            return SelectionStore()
        data = row[0] if isinstance(row[0], list) else json.loads(row[0])
        store = SelectionStore.from_snapshot(data)
        logger.info("Restored %d draft selections for user %s", len(store), user_id)
        return store

    def discard(self, user_id: int) -> None:
        """登出：丢弃会话和草稿"""
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            session.reset()
        self._delete_draft(user_id)

    def _delete_draft(self, user_id: int) -> None:
        self.db.execute_query("DELETE FROM selection_drafts WHERE user_id = ?", [user_id])
