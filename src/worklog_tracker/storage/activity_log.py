"""CSV-backed persistence of the activity log."""

from __future__ import annotations

import csv
import hashlib
import io
from collections import Counter
from pathlib import Path

from pydantic import ValidationError

from .files import StoreCorruptError, StoreError, atomic_write_text
from .models import ActivityLog, LogEntry

CORE_COLUMNS = ("date", "taskId", "repository", "hours")
EXTRA_COLUMNS = ("id", "sentToJira")
COLUMNS = CORE_COLUMNS + EXTRA_COLUMNS

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no", ""}


def legacy_entry_id(date: str, task_id: str, repository: str, hours: str, occurrence: int) -> str:
    """Deterministic id for rows written without an ``id`` column."""

    digest = hashlib.sha1(
        f"{date}|{task_id}|{repository}|{hours}|{occurrence}".encode("utf-8")
    ).hexdigest()
    return f"legacy-{digest[:16]}"


def _parse_flag(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"sentToJira must be true or false, got {raw!r}")


def _format_row(entry: LogEntry) -> dict[str, str]:
    return {
        "date": entry.date.isoformat(),
        "taskId": entry.task_id,
        "repository": entry.repository,
        "hours": repr(float(entry.hours)),
        "id": entry.id,
        "sentToJira": "true" if entry.synced else "false",
    }


class ActivityLogStore:
    """Loads and atomically saves the activity log as CSV."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ActivityLog:
        """Parse every row; any invalid row fails the whole load with its line number."""

        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ActivityLog()
        except UnicodeDecodeError as exc:
            raise StoreCorruptError(f"Activity log {self._path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise StoreError(f"Failed to read activity log {self._path}: {exc}") from exc

        if not text.strip():
            return ActivityLog()

        reader = csv.reader(io.StringIO(text))
        try:
            return self._parse(reader)
        except csv.Error as exc:
            raise StoreCorruptError(
                f"Activity log {self._path} is invalid: line {reader.line_num}: {exc}"
            ) from exc

    def _parse(self, reader) -> ActivityLog:
        header = [column.strip() for column in next(reader)]
        missing = [column for column in CORE_COLUMNS if column not in header]
        if missing:
            raise StoreCorruptError(
                f"Invalid header in {self._path}. Missing columns: {', '.join(missing)}. "
                f"Found: {', '.join(header)}"
            )
        index = {column: position for position, column in enumerate(header)}

        log = ActivityLog()
        errors: list[str] = []
        occurrences: Counter[tuple[str, ...]] = Counter()

        for row in reader:
            line = reader.line_num
            if not any(cell.strip() for cell in row):
                continue
            if len(row) != len(header):
                errors.append(
                    f"line {line}: expected {len(header)} columns ({','.join(header)}) but found {len(row)}"
                )
                continue

            values = {column: row[position].strip() for column, position in index.items()}
            entry_id = values.get("id", "")
            if not entry_id:
                content = tuple(values[column] for column in CORE_COLUMNS)
                occurrences[content] += 1
                entry_id = legacy_entry_id(*content, occurrences[content])

            try:
                entry = LogEntry(
                    id=entry_id,
                    date=values["date"],
                    task_id=values["taskId"],
                    repository=values["repository"],
                    hours=values["hours"],
                    synced=_parse_flag(values.get("sentToJira", "")),
                )
            except (ValidationError, ValueError) as exc:
                errors.append(f"line {line}: {exc}")
                continue

            if not log.add(entry):
                errors.append(f"line {line}: duplicate entry id '{entry.id}'")

        if errors:
            raise StoreCorruptError(f"Activity log {self._path} is invalid: " + "; ".join(errors))
        return log

    def save(self, log: ActivityLog) -> None:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
        writer.writeheader()
        for entry in log:
            writer.writerow(_format_row(entry))
        atomic_write_text(self._path, buffer.getvalue())


__all__ = ["ActivityLogStore", "COLUMNS", "CORE_COLUMNS", "legacy_entry_id"]
