"""Environment-driven configuration with Pydantic v2."""

import json
from typing import Annotated, List, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3020, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)
    cors_origins: Annotated[List[str], NoDecode] = Field(default=["*"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/statuswatch.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None)
    redis_enabled: bool = Field(default=False)
    collector_cache_ttl: int = Field(default=240, ge=30)   # long tier
    api_cache_ttl: int = Field(default=60, ge=30, le=120)  # short tier

    # Detection Engine
    collector_timeout: float = Field(default=10.0, gt=0, le=120)
    degraded_threshold_minutes: float = Field(default=5.0, ge=0)
    radar_attack_threshold: int = Field(default=1000, ge=1)

    # Event Log
    default_events_limit: int = Field(default=100, ge=1)
    max_events_limit: int = Field(default=500, ge=1)
    summary_window_days: int = Field(default=7, ge=1)

    # Retention
    event_retention_days: int = Field(default=30, ge=1)

    # Change Notification
    change_poll_interval: int = Field(default=10, ge=1)

    # Scheduler cadences (5-field cron, UTC)
    cron_checks: str = Field(default="*/10 * * * *")
    cron_cloud: str = Field(default="*/15 * * * *")
    cron_catalog: str = Field(default="0 */4 * * *")
    cron_retention: str = Field(default="0 3 * * *")
    scheduler_enabled: bool = Field(default=True)

    # Outbound HTTP
    http_user_agent: str = Field(default="StatusWatch-Monitor/1.0")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Accept a JSON list or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_sqlite(self) -> bool:
        """Check if the durable store is SQLite."""
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
