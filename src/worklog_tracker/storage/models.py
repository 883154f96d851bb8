"""Data models for persistent tracking."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogEntry(BaseModel):
    """One unit of tracked work. Content fields never change after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: dt.date
    task_id: str
    repository: str
    hours: float = Field(ge=0, allow_inf_nan=False)
    synced: bool = False

    @field_validator("id", "task_id", "repository")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("must not be empty")
        return normalized

    def as_synced(self) -> "LogEntry":
        return self.model_copy(update={"synced": True})


class RepoCursor(BaseModel):
    """Per-repository progress marker: last-seen commit per branch plus inspection status."""

    model_config = ConfigDict(frozen=True)

    branches: dict[str, str] = Field(default_factory=dict)
    status: Literal["ok", "error"] = "ok"
    error: str | None = None

    def with_error(self, message: str) -> "RepoCursor":
        """Same commits, flagged as failed."""

        return RepoCursor(branches=dict(self.branches), status="error", error=message)

    def advanced(self, branches: dict[str, str]) -> "RepoCursor":
        return RepoCursor(branches=dict(branches), status="ok", error=None)


RepoStateTable = dict[str, RepoCursor]


class ActivityLog:
    """Insertion-ordered collection of log entries keyed by entry id."""

    def __init__(self, entries: Iterable[LogEntry] | None = None) -> None:
        self._entries: dict[str, LogEntry] = {}
        for entry in entries or ():
            if not self.add(entry):
                raise ValueError(f"Duplicate log entry id '{entry.id}'")

    def add(self, entry: LogEntry) -> bool:
        """Append ``entry``; returns False and leaves the log untouched if the id exists."""

        if entry.id in self._entries:
            return False
        self._entries[entry.id] = entry
        return True

    def get(self, entry_id: str) -> LogEntry | None:
        return self._entries.get(entry_id)

    def mark_synced(self, entry_ids: Iterable[str]) -> int:
        changed = 0
        for entry_id in entry_ids:
            entry = self._entries.get(entry_id)
            if entry is None or entry.synced:
                continue
            self._entries[entry_id] = entry.as_synced()
            changed += 1
        return changed

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ActivityLog", "LogEntry", "RepoCursor", "RepoStateTable"]
