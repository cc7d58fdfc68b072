"""
数据库连接和管理模块
DuckDB 单连接 + 可重入锁，提供事务上下文和审计日志写入

数据库表说明：
- users: 账户（监护人 / 教职工）
- dependents: 监护人登记的孩子
- menu_items: 每日午餐/加餐菜单项
- orders / order_items: 按周提交的订单及其明细
- default_snacks: 默认点心模板
- selection_drafts: 用户未支付选餐的镜像，便于会话恢复
- logs: 系统操作日志
"""

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import duckdb

from .exceptions import DatabaseError
from ..config.settings import settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = r"""
CREATE SEQUENCE IF NOT EXISTS users_id_seq;
CREATE TABLE IF NOT EXISTS users (
  id INTEGER DEFAULT nextval('users_id_seq') PRIMARY KEY,
  email TEXT UNIQUE NOT NULL,
  name TEXT,
  user_type TEXT CHECK(user_type IN ('guardian','staff')) NOT NULL,
  is_admin BOOLEAN DEFAULT FALSE,
  created_at TIMESTAMP DEFAULT now()
);

CREATE TABLE IF NOT EXISTS dependents (
  id TEXT PRIMARY KEY,
  user_id INTEGER NOT NULL,
  name TEXT NOT NULL,
  course TEXT,
  active BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_dependents_user ON dependents(user_id);

CREATE SEQUENCE IF NOT EXISTS menu_items_id_seq;
CREATE TABLE IF NOT EXISTS menu_items (
  id INTEGER DEFAULT nextval('menu_items_id_seq') PRIMARY KEY,
  code TEXT NOT NULL,
  name TEXT NOT NULL,
  description TEXT,
  category TEXT CHECK(category IN ('lunch','snack')) NOT NULL,
  price INTEGER,
  service_date DATE NOT NULL,
  week_start DATE NOT NULL,
  published BOOLEAN DEFAULT FALSE,
  active BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_menu_items_date ON menu_items(service_date);
CREATE INDEX IF NOT EXISTS idx_menu_items_week ON menu_items(week_start);

CREATE SEQUENCE IF NOT EXISTS orders_id_seq;
CREATE TABLE IF NOT EXISTS orders (
  order_id INTEGER DEFAULT nextval('orders_id_seq') PRIMARY KEY,
  user_id INTEGER NOT NULL,
  user_type TEXT NOT NULL,
  week_start DATE NOT NULL,
  total INTEGER NOT NULL,
  status TEXT CHECK(status IN ('pending','paid','cancelled')) NOT NULL,
  payment_id TEXT,
  cancel_reason TEXT,
  admin_notes TEXT,
  created_at TIMESTAMP DEFAULT now(),
  paid_at TIMESTAMP,
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_orders_user_week ON orders(user_id, week_start);
ALTER TABLE orders ADD COLUMN IF NOT EXISTS admin_notes TEXT;

CREATE SEQUENCE IF NOT EXISTS order_items_id_seq;
CREATE TABLE IF NOT EXISTS order_items (
  item_id INTEGER DEFAULT nextval('order_items_id_seq') PRIMARY KEY,
  order_id INTEGER NOT NULL,
  service_date DATE NOT NULL,
  beneficiary_key TEXT NOT NULL,
  beneficiary_name TEXT,
  category TEXT CHECK(category IN ('lunch','snack')) NOT NULL,
  menu_item_id TEXT,
  item_code TEXT,
  item_name TEXT,
  price INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id);

CREATE TABLE IF NOT EXISTS default_snacks (
  code TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  price INTEGER NOT NULL,
  active BOOLEAN DEFAULT TRUE,
  updated_at TIMESTAMP DEFAULT now()
);

CREATE TABLE IF NOT EXISTS selection_drafts (
  user_id INTEGER PRIMARY KEY,
  payload_json JSON,
  updated_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id INTEGER,
  actor_id INTEGER,
  action TEXT,
  detail_json JSON,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            db_url = db_url.replace("duckdb://", "", 1)
        return db_url or ":memory:"

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接，首次访问时建表"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._connection = duckdb.connect(self.db_path)
                self._init_schema()
            return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.connection

    def _init_schema(self):
        """初始化数据库表结构"""
        try:
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库（应用启动时调用）"""
        self.get_connection()

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        业务异常原样抛出；DuckDB 自身的错误包装为 DatabaseError
        """
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN")
            try:
                yield conn
            except duckdb.Error as e:
                conn.execute("ROLLBACK")
                raise DatabaseError(f"Database operation failed: {e}")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    def execute_query(self, query: str, params: list = None) -> list:
        """执行查询并返回结果"""
        with self._lock:
            try:
                return self.connection.execute(query, params or []).fetchall()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}")

    def execute_one(self, query: str, params: list = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self._lock:
            try:
                return self.connection.execute(query, params or []).fetchone()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}")

    def fetch_dicts(self, query: str, params: list = None) -> list:
        """执行查询，按列名返回字典列表"""
        with self._lock:
            try:
                cursor = self.connection.execute(query, params or [])
                columns = [c[0] for c in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}")

    def write_log(self, action: str, detail: Dict[str, Any],
                  user_id: Optional[int] = None, actor_id: Optional[int] = None,
                  conn: Optional[duckdb.DuckDBPyConnection] = None):
        """写入审计日志；可在调用方的事务连接上执行"""
        target = conn or self.connection
        target.execute(
            "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
            [user_id, actor_id, action, json.dumps(detail, default=str)],
        )


# 全局数据库管理器实例
db_manager = DatabaseManager()
