"""
安全相关功能
JWT 令牌签发/校验，以及 FastAPI 的当前用户、管理员依赖

令牌的 sub 为用户ID；用户身份（类型、孩子列表）每次请求都从数据库读取
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.settings import settings
from ..models.user import User
from .exceptions import AuthenticationError, PermissionDeniedError, UserNotFoundError


class SecurityManager:
    """安全管理器"""

    def create_access_token(self, user_id: int, additional_claims: Optional[Dict[str, Any]] = None) -> str:
        """创建 JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + timedelta(hours=settings.jwt_expire_hours),
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

    def get_user_id_from_token(self, token: str) -> int:
        """从 token 中取出用户ID"""
        subject = self.decode_token(token).get("sub")
        try:
            return int(subject)
        except (TypeError, ValueError):
            raise AuthenticationError("Token missing subject")


# 全局安全管理器实例
security_manager = SecurityManager()

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: int) -> str:
    return security_manager.create_access_token(user_id)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """从 Authorization: Bearer 头解析当前用户"""
    if credentials is None:
        raise AuthenticationError()
    user_id = security_manager.get_user_id_from_token(credentials.credentials)
    try:
        return request.app.state.user_service.get_user(user_id)
    except UserNotFoundError:
        raise AuthenticationError("Unknown user")


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """管理员权限检查"""
    if not user.is_admin:
        raise PermissionDeniedError()
    return user
