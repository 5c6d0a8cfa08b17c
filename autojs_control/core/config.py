"""Application configuration using pydantic settings with structured sections."""

from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./autojs_control.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None


class RedisSettings(BaseModel):
    url: str = "redis://localhost:6379/0"
    backend: Literal["redis", "memory"] = "redis"


class SecuritySettings(BaseModel):
    secret_key: str = Field(default="change-me", min_length=8)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    signature_window: int = 300
    operator_api_key: Optional[str] = None


class QueueSettings(BaseModel):
    drain_limit: int = Field(default=50, ge=1)
    default_instruction_timeout: int = Field(default=300, ge=1, le=3600)
    online_ttl: int = 120
    heartbeat_ttl: int = 300
    instruction_status_ttl: int = 3600
    lock_ttl: int = 30
    retry_counter_ttl: int = 1800
    metrics_ttl: int = 86400


class HeartbeatSettings(BaseModel):
    default_poll_timeout: int = 30
    min_poll_timeout: int = 1
    max_poll_timeout: int = 60
    client_config: Optional[dict[str, Any]] = None


class SchedulerSettings(BaseModel):
    enabled: bool = True
    interval: float = 10.0
    delivery_grace: int = 60


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    project_name: str = "Auto.js Control Server"
    api_prefix: str = "/api"

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    redis: RedisSettings = RedisSettings()
    security: SecuritySettings = SecuritySettings()
    queue: QueueSettings = QueueSettings()
    heartbeat: HeartbeatSettings = HeartbeatSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def secret_key(self) -> str:
        return self.security.secret_key

    @property
    def algorithm(self) -> str:
        return self.security.algorithm

    @property
    def access_token_expire_minutes(self) -> int:
        return self.security.access_token_expire_minutes


@lru_cache()
def get_settings() -> Settings:
    return Settings()
