"""
应用配置
从环境变量读取配置
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "HotelBooking"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotel_booking.db"

    # JWT 配置
    SECRET_KEY: str = "hotel-booking-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 预订配置
    DEFAULT_CURRENCY: str = "USD"
    # 超额支付：False 时余额截断为 0，True 时直接拒绝
    REJECT_OVERPAYMENT: bool = False
    # 草稿超过该天数视为即将过期
    PENDING_DRAFT_EXPIRY_DAYS: int = 1

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# 全局设置实例
settings = Settings()
