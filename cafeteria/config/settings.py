from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/cafeteria.duckdb"

    # JWT配置
    jwt_secret_key: str = "change-me-in-production-cafeteria-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7

    # API配置
    api_title: str = "Cafeteria Orders API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 价格表（整数比索），菜单项没有单独定价时使用
    guardian_lunch_price: int = 5500
    guardian_snack_price: int = 5500
    staff_lunch_price: int = 4875
    staff_snack_price: int = 4875

    # 订餐截止：本周周三 13:00（weekday: 周一=0）
    order_deadline_weekday: int = 2
    order_deadline_hour: int = 13
    weeks_ahead: int = 4

    # 任一周存在重复支付时，是否阻止所有周的支付
    block_all_weeks_on_conflict: bool = True

    # 支付配置
    stripe_secret_key: Optional[str] = None
    payment_currency: str = "clp"
    payment_success_url: str = "http://localhost:3000/payment/return?order={order_id}"
    payment_cancel_url: str = "http://localhost:3000/mi-pedido"

    log_level: str = "INFO"

    # 开发模式
    debug: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False

    def price_table(self) -> dict:
        """按用户类型返回默认价格表"""
        return {
            "guardian": {"lunch": self.guardian_lunch_price, "snack": self.guardian_snack_price},
            "staff": {"lunch": self.staff_lunch_price, "snack": self.staff_snack_price},
        }


# 全局设置实例
settings = Settings()
