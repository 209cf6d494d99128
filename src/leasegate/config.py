"""LeaseGate configuration management."""

import json
from datetime import timedelta
from enum import Enum
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """LeaseGate configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEASEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # General
    env: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./leasegate.db"

    # Lease behavior
    stale_timeout_seconds: float = Field(
        default=30,
        gt=0,
        description="Seconds without a liveness probe before a lease is reclaimable",
    )
    sweep_interval_seconds: float = Field(
        default=60,
        gt=0,
        description="Reclamation sweep cadence",
    )

    # Identifier pool
    identifier_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Identifier patterns, e.g. vm-[1-50]",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    @property
    def stale_timeout(self) -> timedelta:
        return timedelta(seconds=self.stale_timeout_seconds)

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.sweep_interval_seconds)

    # Validators
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate the database URL uses an async driver we support."""
        if not v.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
            raise ValueError(
                "database_url must be sqlite+aiosqlite:// or postgresql+asyncpg://"
            )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @field_validator("identifier_patterns", mode="before")
    @classmethod
    def parse_identifier_patterns(cls, v: Any) -> list[str]:
        """Accept a JSON array or a comma-separated string."""
        if v is None or v == "":
            return []
        if isinstance(v, str):
            stripped = v.strip()
            if stripped.startswith("["):
                return json.loads(stripped)
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return v


settings = Settings()
