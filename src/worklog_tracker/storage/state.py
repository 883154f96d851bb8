"""JSON-backed persistence of per-repository cursors."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .files import StoreCorruptError, StoreError, StoreWriteError, atomic_write_text
from .models import RepoCursor, RepoStateTable

STATE_VERSION = 1


class _StateDocument(BaseModel):
    version: int = STATE_VERSION
    repositories: dict[str, RepoCursor] = Field(default_factory=dict)


class RepoStateStore:
    """Loads and atomically saves the repository state table."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RepoStateTable:
        """Return the stored table, or an empty one when nothing was saved yet."""

        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError as exc:
            raise StoreCorruptError(f"Repo state file {self._path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise StoreError(f"Failed to read repo state file {self._path}: {exc}") from exc

        if not text.strip():
            return {}

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreCorruptError(f"Repo state file {self._path} is not valid JSON: {exc}") from exc

        try:
            document = _StateDocument.model_validate(raw)
        except ValidationError as exc:
            raise StoreCorruptError(f"Repo state file {self._path} has an invalid shape: {exc}") from exc

        if document.version != STATE_VERSION:
            raise StoreCorruptError(
                f"Repo state file {self._path} has unsupported version {document.version}"
            )
        return dict(document.repositories)

    def save(self, table: RepoStateTable) -> None:
        document = _StateDocument(repositories=dict(sorted(table.items())))
        try:
            payload = json.dumps(document.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        except (TypeError, ValueError) as exc:  # pragma: no cover - models always serialize
            raise StoreWriteError(f"Failed to serialize repo state: {exc}") from exc
        atomic_write_text(self._path, payload)


__all__ = ["RepoStateStore", "STATE_VERSION"]
