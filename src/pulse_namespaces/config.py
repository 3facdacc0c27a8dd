"""Centralized application configuration via environment variables."""

from datetime import timedelta
from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class ScanFailurePolicy(StrEnum):
    """What a maintenance pass does when one namespace handler fails."""

    ABORT = "abort"
    CONTINUE = "continue"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Credentials use SecretStr to prevent accidental logging.
    Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"

    # --- PostgreSQL ---
    postgres_user: str = "pulse"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "pulse"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Redis (arq scheduler) ---
    redis_url: str = "redis://localhost:6379/0"

    # --- RabbitMQ management API ---
    rabbitmq_url: str = "http://localhost:15672"
    rabbitmq_username: str = "guest"
    rabbitmq_password: SecretStr = SecretStr("guest")
    rabbitmq_timeout: float = 10.0

    # --- Namespaces ---
    # Templates are rendered per namespace by replacing ``{{namespace}}``.
    namespace_prefix: str = ""
    virtualhost: str = "/"
    user_tags: list[str] = []
    user_config_permission: str = "^(queue|exchange)/{{namespace}}/.*"
    user_write_permission: str = "^(queue|exchange)/{{namespace}}/.*"
    user_read_permission: str = "^((queue|exchange)/{{namespace}}/.*|exchange/.*)"
    namespace_rotation_interval: timedelta = timedelta(hours=1)

    # --- Maintenance passes ---
    scan_concurrency: int = Field(default=250, ge=1)
    scan_failure_policy: ScanFailurePolicy = ScanFailurePolicy.CONTINUE
    modify_max_attempts: int = Field(default=5, ge=1)
    expire_cron_minutes: set[int] = {0, 15, 30, 45}
    rotate_cron_minutes: set[int] = set(range(0, 60, 5))

    # --- API clients ---
    # Maps API key -> granted scopes, e.g. {"key": ["pulse:namespace:ci-*"]}
    api_clients: dict[str, list[str]] = {}

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from pulse_namespaces.config import get_settings
        settings = get_settings()

    Or for dependency injection in FastAPI::

        @app.get("/")
        def root(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()


settings = get_settings()
