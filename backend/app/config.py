"""
应用配置
从环境变量读取配置，支持 .env 文件
"""
from typing import List, Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Hotel Check-in Back Office"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotel_checkin.db"

    # JWT 配置（前台员工）
    SECRET_KEY: str = "checkin-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # CORS，逗号分隔
    CORS_ORIGINS: str = "*"

    # 入住链接
    FRONTEND_URL: str = "http://localhost:3000"

    # 入住会话（token + 入住码）
    CHECKIN_TOKEN_BYTES: int = 32
    CHECKIN_TOKEN_TTL_HOURS: int = 24
    CHECKIN_CODE_TTL_DAYS: int = 7
    CHECKIN_CODE_NEVER_EXPIRE: bool = False
    CHECKIN_CODE_RESEND_MINUTES: int = 15
    CHECKIN_CREATE_MAX_RETRIES: int = 5

    # SMTP 配置，未配置时仅记录日志
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = None
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_NAME: str = "Front Desk"
    SMTP_USE_TLS: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def cors_origin_list(self) -> List[str]:
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]


# 全局设置实例
settings = Settings()
