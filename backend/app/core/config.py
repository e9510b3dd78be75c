from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )
    database_url: str = Field(...)
    jwt_secret_key: str = Field(...)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)
    refresh_token_expire_minutes: int = Field(default=60 * 24 * 7)

    realtime_provider: Literal["pusher", "memory"] = Field(default="memory")
    pusher_app_id: str | None = Field(default=None)
    pusher_key: str = Field(default="local-key")
    pusher_secret: str = Field(default="local-secret")
    pusher_cluster: str = Field(default="mt1")

    rate_limit_window_seconds: int = Field(default=60)
    send_message_rate_limit: int = Field(default=30)
    login_rate_limit: int = Field(default=10)

    log_level: str = Field(default="INFO")

    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
