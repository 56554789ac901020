from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Mesh API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_user: str = Field(default="mesh", env="DB_USER")
    database_password: str = Field(default="mesh", env="DB_PASSWORD")
    database_host: str = Field(default="db", env="DB_HOST")
    database_port: int = Field(default=3306, env="DB_PORT")
    database_name: str = Field(default="mesh", env="DB_NAME")
    database_url_override: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full SQLAlchemy URL taking precedence over the individual DB_* settings",
    )

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    message_max_length: int = Field(default=1000, env="MESSAGE_MAX_LENGTH")
    message_history_default_limit: int = Field(default=50, env="MESSAGE_HISTORY_DEFAULT_LIMIT")
    message_history_max_limit: int = Field(default=100, env="MESSAGE_HISTORY_MAX_LIMIT")
    conversation_page_default_size: int = Field(default=20, env="CONVERSATION_PAGE_DEFAULT_SIZE")
    conversation_page_max_size: int = Field(default=100, env="CONVERSATION_PAGE_MAX_SIZE")

    media_root: Path = Field(default=Path("uploads"), env="MEDIA_ROOT")
    media_base_url: str = Field(default="/api/messages/media", env="MEDIA_BASE_URL")
    max_upload_size: int = Field(
        default=25 * 1024 * 1024, env="MAX_UPLOAD_SIZE", description="Maximum upload size in bytes"
    )

    push_notifications_enabled: bool = Field(
        default=False,
        env="PUSH_NOTIFICATIONS_ENABLED",
        description="Toggle push notifications for recipients without a live connection.",
    )
    push_gateway_url: AnyHttpUrl | None = Field(
        default=None,
        env="PUSH_GATEWAY_URL",
        description="Endpoint of the Web Push relay that signs and forwards notifications.",
    )
    push_gateway_timeout_seconds: float = Field(default=10.0, env="PUSH_GATEWAY_TIMEOUT_SECONDS")
    web_push_vapid_public_key: str | None = Field(
        default=None,
        env="WEB_PUSH_VAPID_PUBLIC_KEY",
        description="VAPID public key handed to browsers when subscribing.",
    )
    push_icon: str = Field(default="/icon-192x192.png", env="PUSH_ICON")
    push_target_base_url: str = Field(default="/inbox", env="PUSH_TARGET_BASE_URL")
    push_tag: str = Field(default="mesh-message", env="PUSH_TAG")

    realtime_queue_size: int = Field(
        default=1000,
        env="REALTIME_QUEUE_SIZE",
        description="Maximum number of fan-out events waiting for the delivery worker.",
    )
    realtime_send_timeout_seconds: float = Field(
        default=5.0,
        env="REALTIME_SEND_TIMEOUT_SECONDS",
        description="Upper bound for delivering one event to one websocket.",
    )
    websocket_keepalive_timeout_seconds: float = Field(
        default=30.0, env="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS"
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25.0, env="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
