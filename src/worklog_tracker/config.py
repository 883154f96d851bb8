"""Configuration management for the worklog tracker."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_HOME = Path("~/.worklog-tracker")


class TrackerSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    config_path: Path = Field(
        default=_DEFAULT_HOME / "config.yaml", validation_alias="WORKLOG_CONFIG_PATH"
    )
    state_path: Path = Field(
        default=_DEFAULT_HOME / "repo_activity_state.json", validation_alias="WORKLOG_STATE_PATH"
    )
    log_path: Path = Field(
        default=_DEFAULT_HOME / "activity_log.csv", validation_alias="WORKLOG_LOG_PATH"
    )
    lock_path: Path | None = Field(default=None, validation_alias="WORKLOG_LOCK_PATH")
    git_path: str | None = Field(default=None, validation_alias="GIT_PATH")
    max_concurrency: int = Field(default=8, validation_alias="WORKLOG_MAX_CONCURRENCY")
    inspect_timeout: float = Field(default=30.0, validation_alias="WORKLOG_INSPECT_TIMEOUT")
    lock_timeout: float = Field(default=10.0, validation_alias="WORKLOG_LOCK_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="WORKLOG_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "WORKLOG_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("max_concurrency")
    @classmethod
    def _validate_max_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("WORKLOG_MAX_CONCURRENCY must be >= 1")
        return value

    @field_validator("inspect_timeout")
    @classmethod
    def _validate_inspect_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("WORKLOG_INSPECT_TIMEOUT must be > 0")
        return value

    @field_validator("lock_timeout")
    @classmethod
    def _validate_lock_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("WORKLOG_LOCK_TIMEOUT must be >= 0")
        return value

    @property
    def resolved_lock_path(self) -> Path:
        """Lock file guarding both stores; sits next to the state file unless overridden."""

        if self.lock_path is not None:
            return self.lock_path
        return self.state_path.with_name(self.state_path.name + ".lock")


@lru_cache(maxsize=1)
def get_settings() -> TrackerSettings:
    """Return cached settings instance."""

    settings = TrackerSettings()
    settings.config_path = settings.config_path.expanduser().resolve()
    settings.state_path = settings.state_path.expanduser().resolve()
    settings.log_path = settings.log_path.expanduser().resolve()
    if settings.lock_path is not None:
        settings.lock_path = settings.lock_path.expanduser().resolve()
    return settings


__all__ = ["TrackerSettings", "get_settings"]
