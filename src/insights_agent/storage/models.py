from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

ShareLevel = Literal["none", "metadata", "full"]
SHARE_LEVELS: tuple[str, ...] = ("none", "metadata", "full")


def utcnow() -> datetime:
    """UTC now with timezone info for stable serialization."""
    return datetime.now(UTC)


class SyncState(BaseModel):
    """Persisted ledger of everything the collector has accepted."""

    synced_sessions: dict[str, datetime] = Field(default_factory=dict)
    synced_plans: dict[str, datetime] = Field(default_factory=dict)
    last_sync: datetime | None = None

    @field_validator("synced_sessions", "synced_plans", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return {} if value is None else value

    @field_validator("synced_sessions", "synced_plans", mode="after")
    @classmethod
    def _aware_values(cls, value: dict[str, datetime]) -> dict[str, datetime]:
        return {key: _as_utc(ts) for key, ts in value.items()}

    @field_validator("last_sync", mode="after")
    @classmethod
    def _aware_last_sync(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class SyncStats(BaseModel):
    """Summary of the persisted ledger."""

    total_synced: int = 0
    total_plans_synced: int = 0
    last_sync: datetime | None = None


class ServerConfig(BaseModel):
    """Collector connection settings."""

    url: str | None = Field(default=None, description="Collector base URL")
    api_key: str | None = Field(default=None, description="API key sent as X-API-Key")
    api_key_env: str = Field(
        default="CLAUDE_INSIGHTS_API_KEY",
        min_length=1,
        description="Environment variable consulted when api_key is unset",
    )
    timeout_seconds: float = Field(default=30.0, gt=0.0, description="HTTP timeout in seconds")

    def resolved_api_key(self) -> str | None:
        return self.api_key or os.environ.get(self.api_key_env) or None


class SharingConfig(BaseModel):
    """Privacy policy applied before anything leaves the machine."""

    level: ShareLevel = Field(
        default="metadata",
        description="none: share nothing; metadata: stats only; full: include message content",
    )
    exclude_projects: list[str] = Field(
        default_factory=list,
        description="Glob patterns of project paths that are never shared",
    )
    anonymize_paths: bool = Field(
        default=True,
        description="Send only the last path component as the project name",
    )


class SyncConfig(BaseModel):
    """Sync loop behaviour."""

    interval: int = Field(default=300, gt=0, description="Seconds between sync passes")
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts per batch before giving up until the next pass",
    )
    batch_size: int = Field(default=10, ge=1, le=100)
    logs_dir: Path | None = Field(
        default=None,
        description="Claude Code data directory (defaults to ~/.claude)",
    )
    state_path: Path | None = Field(
        default=None,
        description="Where the delivery ledger is stored",
    )


class LoggingConfig(BaseModel):
    """Log level and optional log file."""

    level: Literal["debug", "info", "warning", "error"] = "info"
    file: str | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _lowercase_level(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value


class InsightsConfig(BaseModel):
    """Root configuration for config.yaml."""

    extends: list[str] = Field(default_factory=list)
    server: ServerConfig = Field(default_factory=ServerConfig)
    sharing: SharingConfig = Field(default_factory=SharingConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
