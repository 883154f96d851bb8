"""Configuration models describing which repositories the tracker watches."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_TASK_ID_REGEX = r"[A-Z][A-Z0-9]+-\d+"


def _validate_pattern(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        re.compile(value)
    except re.error as exc:
        raise ValueError(f"Invalid task id pattern {value!r}: {exc}") from exc
    return value


class RepoConfig(BaseModel):
    """A single repository to watch, immutable for the duration of a scan."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(..., description="Local working copy to inspect.")
    id: str = Field(
        default="",
        description="Stable identifier used in the state file and the log. Defaults to the directory name.",
    )
    main_branch: str | None = Field(
        default=None,
        description="Primary branch of the repository, informational only.",
    )
    task_id_regex: str | None = Field(
        default=None,
        description="Overrides the tracker-wide task id pattern for this repository.",
    )
    authors: tuple[str, ...] = Field(
        default=(),
        description="Author emails whose commits are billable. Empty means every author.",
    )
    minutes_per_commit: float | None = Field(
        default=None,
        description="Overrides the tracker-wide minutes credited per commit.",
    )

    @field_validator("path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        return value

    @field_validator("task_id_regex")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        return _validate_pattern(value)

    @field_validator("authors", mode="before")
    @classmethod
    def _normalize_authors(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip().lower() for item in value if str(item).strip())
        raise TypeError("authors must be a list of email addresses")

    @field_validator("minutes_per_commit")
    @classmethod
    def _check_minutes(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("minutes_per_commit must be positive")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: Any) -> Any:
        if isinstance(data, dict):
            repo_id = str(data.get("id") or "").strip()
            if not repo_id and data.get("path"):
                repo_id = Path(str(data["path"])).expanduser().name
            data = {**data, "id": repo_id}
        return data

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value:
            raise ValueError("Repository id must not be empty")
        return value


class TrackerConfig(BaseModel):
    """Top-level tracker configuration loaded from YAML."""

    repositories: list[RepoConfig] = Field(default_factory=list)
    repositories_folder: Path | None = Field(
        default=None,
        description="Folder whose direct child git repositories are watched automatically.",
    )
    task_id_regex: str = Field(default=DEFAULT_TASK_ID_REGEX)
    minutes_per_commit: float = Field(default=15.0)
    first_scan_lookback_days: int | None = Field(
        default=30,
        description="How far back a branch without a cursor is walked. None walks the full history.",
    )
    task_tracking_url: str | None = Field(default=None)

    @field_validator("repositories", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [{"path": item} if isinstance(item, str) else item for item in value]
        raise TypeError("repositories must be a sequence of repository entries")

    @field_validator("repositories_folder", mode="before")
    @classmethod
    def _expand_folder(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return Path(str(value)).expanduser()

    @field_validator("task_id_regex")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        return _validate_pattern(value) or DEFAULT_TASK_ID_REGEX

    @field_validator("minutes_per_commit")
    @classmethod
    def _check_minutes(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("minutes_per_commit must be positive")
        return value

    @field_validator("first_scan_lookback_days")
    @classmethod
    def _check_lookback(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError("first_scan_lookback_days must be >= 0")
        return value

    @model_validator(mode="after")
    def _check_repositories(self) -> "TrackerConfig":
        if not self.repositories and self.repositories_folder is None:
            raise ValueError("Either repositories or repositories_folder must be provided")
        seen: set[str] = set()
        for repo in self.repositories:
            if repo.id in seen:
                raise ValueError(
                    f"Duplicate repository id '{repo.id}'; set an explicit id for one of them"
                )
            seen.add(repo.id)
        return self

    def pattern_for(self, repo: RepoConfig) -> re.Pattern[str]:
        return re.compile(repo.task_id_regex or self.task_id_regex, re.IGNORECASE)

    def hours_for(self, repo: RepoConfig) -> float:
        minutes = repo.minutes_per_commit or self.minutes_per_commit
        return round(minutes / 60, 4)


__all__ = ["DEFAULT_TASK_ID_REGEX", "RepoConfig", "TrackerConfig"]
