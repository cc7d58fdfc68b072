"""
自定义异常类
提供更精确的错误处理和异常信息

分类：
- 输入契约错误：调用方传入了非法数据（如无法解析的日期），直接失败，不重试
- 校验错误：提交前即可发现的问题（如没有任何选餐）
- 冲突错误：选餐与已支付订单重复
- 支付提交错误：外部订单/支付服务失败，按周汇总后返回给用户
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """数据库相关异常"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "AUTHENTICATION_REQUIRED")


class PermissionDeniedError(BaseApplicationError):
    """权限拒绝错误"""

    def __init__(self, message: str = "Administrator permission required"):
        super().__init__(message, "PERMISSION_DENIED")


class InputContractError(BaseApplicationError):
    """输入契约错误"""
    pass


class MalformedDateError(InputContractError):
    """日期无法解析为 YYYY-MM-DD"""

    def __init__(self, value: Any):
        super().__init__(
            f"Malformed service date: {value!r}",
            "MALFORMED_DATE",
            {"value": str(value)},
        )


class ValidationError(BaseApplicationError):
    """数据验证异常"""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class EmptySelectionError(ValidationError):
    """没有可支付的选餐"""

    def __init__(self, message: str = "Select at least one lunch or snack before paying"):
        super().__init__(message, "EMPTY_SELECTION")


class InvalidSelectionError(ValidationError):
    """选餐内容不合法"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_SELECTION", details)


class ConflictError(BaseApplicationError):
    """与已有数据冲突"""
    pass


class DuplicatePaymentError(ConflictError):
    """选餐已在已支付订单中"""

    def __init__(self, conflicts: list):
        lines = "\n".join(conflicts)
        super().__init__(
            f"You cannot pay for menus that were already paid:\n{lines}",
            "DUPLICATE_PAYMENT",
            {"conflicts": list(conflicts)},
        )


class PaymentSubmissionError(BaseApplicationError):
    """外部订单服务提交失败"""

    def __init__(self, week_errors: Dict[str, str]):
        joined = "; ".join(f"Week {week}: {error}" for week, error in week_errors.items())
        super().__init__(
            f"Error processing payments: {joined}",
            "PAYMENT_FAILED",
            {"weeks": dict(week_errors)},
        )


class PaymentStateError(BaseApplicationError):
    """支付流程状态不允许该操作"""

    def __init__(self, message: str):
        super().__init__(message, "PAYMENT_STATE_INVALID")


class NotFoundError(BaseApplicationError):
    """资源不存在"""
    pass


class OrderNotFoundError(NotFoundError):
    """订单不存在"""

    def __init__(self, order_id: Any):
        super().__init__(f"Order {order_id} not found", "ORDER_NOT_FOUND", {"order_id": order_id})


class MenuItemNotFoundError(NotFoundError):
    """菜单项不存在"""

    def __init__(self, item_id: Any):
        super().__init__(f"Menu item {item_id} not found", "MENU_ITEM_NOT_FOUND", {"item_id": item_id})


class UserNotFoundError(NotFoundError):
    """用户不存在"""

    def __init__(self, user_id: Any):
        super().__init__(f"User {user_id} not found", "USER_NOT_FOUND", {"user_id": user_id})


class OrderStatusError(BaseApplicationError):
    """订单状态不允许该操作"""

    def __init__(self, order_id: Any, status: str):
        super().__init__(
            f"Order {order_id} is {status}",
            "ORDER_STATUS_INVALID",
            {"order_id": order_id, "status": status},
        )
