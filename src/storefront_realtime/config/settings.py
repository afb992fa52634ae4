"""Settings configuration"""
import json
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the realtime storefront service"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False,
        validate_assignment=True, populate_by_name=True
    )

    # Application
    app_name: str = Field(default="Storefront Realtime", validation_alias="APP_NAME")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    api_prefix: str = Field(default="/api/v1", validation_alias="API_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=4000, validation_alias="PORT", ge=1, le=65535)
    workers: int = Field(default=1, validation_alias="WORKERS", ge=1)
    reload: bool = Field(default=False, validation_alias="RELOAD")

    # Storage
    store_backend: str = Field(default="memory", validation_alias="STORE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    redis_max_connections: int = Field(default=50, validation_alias="REDIS_MAX_CONNECTIONS")
    message_ttl_seconds: int = Field(default=12 * 60 * 60, validation_alias="MESSAGE_TTL_SECONDS", gt=0)
    notice_ttl_seconds: int = Field(default=24 * 60 * 60, validation_alias="NOTICE_TTL_SECONDS", gt=0)
    thread_page_size: int = Field(default=20, validation_alias="THREAD_PAGE_SIZE", ge=1)
    thread_page_max: int = Field(default=100, validation_alias="THREAD_PAGE_MAX", ge=1)
    notice_list_limit: int = Field(default=50, validation_alias="NOTICE_LIST_LIMIT", ge=1)

    # Delivery
    delivery_backend: str = Field(default="local", validation_alias="DELIVERY_BACKEND")
    redis_channel: str = Field(default="storefront:realtime", validation_alias="REDIS_CHANNEL")

    # WebSocket
    ws_max_connections: int = Field(default=1000, validation_alias="WS_MAX_CONNECTIONS", ge=1)
    ws_heartbeat_interval: int = Field(default=30, validation_alias="WS_HEARTBEAT_INTERVAL", ge=0)
    ws_send_timeout: float = Field(default=5.0, validation_alias="WS_SEND_TIMEOUT", gt=0)
    typing_timeout_seconds: float = Field(default=5.0, validation_alias="TYPING_TIMEOUT_SECONDS", gt=0)

    # Security
    jwt_secret_key: SecretStr = Field(default=SecretStr("change-me"), validation_alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    jwt_access_token_expire_minutes: int = Field(
        default=60 * 24 * 7, validation_alias="JWT_ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    cors_origins: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"], validation_alias="CORS_ORIGINS"
    )
    cors_allow_credentials: bool = Field(default=True, validation_alias="CORS_ALLOW_CREDENTIALS")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="console", validation_alias="LOG_FORMAT")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle JSON array format
            if v.startswith("["):
                try:
                    return json.loads(v)
                except (json.JSONDecodeError, ValueError):
                    pass
            # Handle comma-separated format
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("store_backend", "delivery_backend", mode="before")
    @classmethod
    def normalize_backend(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
        return v

    @field_validator("store_backend")
    @classmethod
    def check_store_backend(cls, v):
        if v not in ("memory", "redis"):
            raise ValueError(f"Unsupported store backend: {v}")
        return v

    @field_validator("delivery_backend")
    @classmethod
    def check_delivery_backend(cls, v):
        if v not in ("local", "redis"):
            raise ValueError(f"Unsupported delivery backend: {v}")
        return v

    # Properties
    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def uses_redis(self) -> bool:
        return self.store_backend == "redis" or self.delivery_backend == "redis"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
