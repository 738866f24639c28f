"""Runtime configuration, read from ``TEL_*`` environment variables or ``.env``.

    TEL_DATABASE_TYPE=postgres
    TEL_DATABASE_URL=postgresql://ledger:secret@db/ninja
    TEL_TENANT_NAME=db-ninja-02
    TEL_TASK_RUNNER=threaded
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    SQLITE = "sqlite"
    POSTGRES = "postgres"


class TaskRunnerType(str, Enum):
    """Where queued cash-event tasks run.

    ``inline`` runs them in the dispatching thread; ``threaded`` hands them
    to a worker pool.
    """

    INLINE = "inline"
    THREADED = "threaded"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Tax Event Ledger"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Tenant database
    database_type: DatabaseType = DatabaseType.SQLITE
    database_url: str | None = Field(
        default=None, description="Postgres DSN, required when database_type=postgres"
    )
    sqlite_path: Path = Path("tax_event_ledger.db")
    tenant_name: str = Field(
        default="db-ninja-01",
        description="Name under which the tenant database is registered",
    )

    # Logging; log_format defaults to json in production, console elsewhere
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] | None = None
    log_file: Path | None = None

    # HTTP API
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1, le=65535)

    # Payment deletion
    reversal_attempts: int = Field(
        default=2, ge=1, description="Attempts when the payment row lock is contended"
    )
    reversal_backoff_seconds: float = Field(default=0.1, ge=0)
    status_tolerance: Decimal = Field(
        default=Decimal("0.005"),
        description="Distance from the invoice amount at which a balance counts as unpaid",
    )

    # Queued cash events
    task_runner: TaskRunnerType = TaskRunnerType.INLINE
    task_workers: int = Field(default=4, ge=1, le=64)
    cash_event_release_after: float = Field(default=10, ge=0)
    cash_event_expire_after: float = Field(default=30, gt=0)
    cash_event_tries: int = Field(default=1, ge=1)

    # Hourly tax summary sweep
    close_of_day_lookback_hours: int = Field(default=15, ge=1, le=24)

    @model_validator(mode="after")
    def _default_log_format(self) -> "Settings":
        if self.log_format is None:
            self.log_format = "json" if self.is_production else "console"
        return self

    @property
    def effective_database_url(self) -> str:
        """The Postgres DSN when configured, otherwise a SQLite URL."""
        if self.database_type == DatabaseType.POSTGRES and self.database_url:
            return self.database_url
        return f"sqlite:///{self.sqlite_path}"

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings; ``get_settings.cache_clear()`` reloads them."""
    return Settings()
