"""
用户服务
账户与孩子登记；为选餐/支付提供当前用户身份和可订餐的受益人
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import UserNotFoundError, ValidationError
from ..models.base import UserType
from ..models.user import Dependent, User, UserCreate

logger = logging.getLogger(__name__)


class UserService:
    """用户服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def get_user(self, user_id: int) -> User:
        """
        获取用户及其孩子

        Raises:
            UserNotFoundError: 用户不存在时
        """
        rows = self.db.fetch_dicts(
            "SELECT id, email, name, user_type, is_admin, created_at FROM users WHERE id = ?",
            [user_id],
        )
        if not rows:
            raise UserNotFoundError(user_id)
        return self._to_user(rows[0])

    def get_user_by_email(self, email: str) -> Optional[User]:
        rows = self.db.fetch_dicts(
            "SELECT id, email, name, user_type, is_admin, created_at FROM users WHERE email = ?",
            [email.strip().lower()],
        )
        return self._to_user(rows[0]) if rows else None

    def create_user(self, data: UserCreate) -> User:
        """创建账户；邮箱不区分大小写且唯一"""
        email = data.email.strip().lower()
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if self.get_user_by_email(email):
            raise ValidationError(f"User {email} already exists", "DUPLICATE_RESOURCE")

        with self.db.transaction() as conn:
            row = conn.execute(
                "INSERT INTO users(email, name, user_type, is_admin) VALUES (?,?,?,?) RETURNING id",
                [email, data.name, UserType(data.user_type).value, data.is_admin],
            ).fetchone()
            self.db.write_log("user_create", {"email": email, "user_type": UserType(data.user_type).value},
                              user_id=row[0], actor_id=row[0], conn=conn)

        logger.info("Created %s account %s", UserType(data.user_type).value, row[0])
        return self.get_user(row[0])

    def add_dependent(self, user_id: int, name: str, course: Optional[str] = None) -> Dependent:
        """为监护人登记孩子"""
        user = self.get_user(user_id)
        if user.is_staff:
            raise ValidationError("Staff accounts order for themselves and cannot register dependents")
        if not name or not name.strip():
            raise ValidationError("Dependent name is required")

        dependent_id = f"dep-{uuid.uuid4().hex[:12]}"
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO dependents(id, user_id, name, course) VALUES (?,?,?,?)",
                [dependent_id, user_id, name.strip(), course],
            )
        return Dependent(id=dependent_id, name=name.strip(), course=course, active=True)

    def deactivate_dependent(self, user_id: int, dependent_id: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE dependents SET active = FALSE WHERE id = ? AND user_id = ?",
                [dependent_id, user_id],
            )

    def list_dependents(self, user_id: int, include_inactive: bool = False) -> List[Dependent]:
        query = "SELECT id, name, course, active FROM dependents WHERE user_id = ?"
        if not include_inactive:
            query += " AND active"
        query += " ORDER BY created_at, id"
        return [Dependent(**row) for row in self.db.fetch_dicts(query, [user_id])]

    def list_users(self, user_type: Optional[UserType] = None, is_admin: Optional[bool] = None,
                   search: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[User]:
        """管理端：用户列表，按注册时间倒序分页"""
        conditions, params = [], []
        if user_type:
            conditions.append("user_type = ?")
            params.append(UserType(user_type).value)
        if is_admin is not None:
            conditions.append("is_admin = ?")
            params.append(is_admin)
        if search:
            conditions.append("(lower(email) LIKE ? OR lower(coalesce(name, '')) LIKE ?)")
            pattern = f"%{search.strip().lower()}%"
            params.extend([pattern, pattern])

        query = "SELECT id, email, name, user_type, is_admin, created_at FROM users"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        return [self._to_user(row) for row in self.db.fetch_dicts(query, params)]

    def get_user_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        管理端：用户统计

        Returns:
            dict: 总数、监护人/教职工/管理员数量、在册孩子数、近 7 天和近 30 天新注册数
        """
        now = now or datetime.now()
        row = self.db.execute_one(
            """
            SELECT COUNT(*),
                   COUNT(*) FILTER (WHERE user_type = 'guardian'),
                   COUNT(*) FILTER (WHERE user_type = 'staff'),
                   COUNT(*) FILTER (WHERE is_admin),
                   COUNT(*) FILTER (WHERE created_at >= ?),
                   COUNT(*) FILTER (WHERE created_at >= ?)
            FROM users
            """,
            [now - timedelta(days=7), now - timedelta(days=30)],
        )
        dependents = self.db.execute_one("SELECT COUNT(*) FROM dependents WHERE active")
        return {
            "total_users": row[0],
            "guardians": row[1],
            "staff": row[2],
            "admins": row[3],
            "active_dependents": dependents[0],
            "new_users_this_week": row[4],
            "new_users_this_month": row[5],
        }

    def _to_user(self, row: dict) -> User:
        dependents = []
        if row["user_type"] == UserType.GUARDIAN.value:
            dependents = self.list_dependents(row["id"], include_inactive=True)
        return User(
            id=row["id"],
            email=row["email"],
            name=row.get("name"),
            user_type=row["user_type"],
            is_admin=bool(row.get("is_admin")),
            created_at=row.get("created_at"),
            dependents=dependents,
        )
