"""Hour summaries over the activity log."""

from __future__ import annotations

import calendar
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from .storage import LogEntry


@dataclass(slots=True)
class SummaryLine:
    task_id: str
    hours: float
    repository: str | None = None


@dataclass(slots=True)
class DaySummary:
    day: date
    lines: list[SummaryLine] = field(default_factory=list)
    total: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "total": round(self.total, 4),
            "tasks": [
                {"task_id": line.task_id, "repository": line.repository, "hours": round(line.hours, 4)}
                for line in self.lines
            ],
        }


@dataclass(slots=True)
class MonthSummary:
    year: int
    month: int
    tasks: list[SummaryLine] = field(default_factory=list)
    weeks: dict[int, float] = field(default_factory=dict)
    total: float = 0.0

    @property
    def name(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": f"{self.year:04d}-{self.month:02d}",
            "total": round(self.total, 4),
            "weeks": {str(week): round(hours, 4) for week, hours in sorted(self.weeks.items())},
            "tasks": [
                {"task_id": line.task_id, "hours": round(line.hours, 4)} for line in self.tasks
            ],
        }


def format_hours(hours: float) -> str:
    """Format hours as ``"Xh Ym"``."""

    whole = math.floor(hours)
    minutes = round((hours - whole) * 60)
    if minutes == 60:
        whole, minutes = whole + 1, 0
    return f"{whole}h {minutes}m"


def week_of_month(day: date) -> int:
    """1-based week number within the month, weeks starting on Sunday."""

    first_weekday = (day.replace(day=1).weekday() + 1) % 7
    return math.ceil((day.day + first_weekday) / 7)


def summarize_day(entries: Iterable[LogEntry], day: date) -> DaySummary:
    grouped: dict[tuple[str, str], float] = defaultdict(float)
    for entry in entries:
        if entry.date == day:
            grouped[(entry.task_id, entry.repository)] += entry.hours

    lines = [
        SummaryLine(task_id=task_id, repository=repository, hours=hours)
        for (task_id, repository), hours in grouped.items()
    ]
    lines.sort(key=lambda line: (-line.hours, line.task_id))
    return DaySummary(day=day, lines=lines, total=sum(line.hours for line in lines))


def summarize_month(entries: Iterable[LogEntry], year: int, month: int) -> MonthSummary:
    tasks: dict[str, float] = defaultdict(float)
    weeks: dict[int, float] = defaultdict(float)
    for entry in entries:
        if entry.date.year != year or entry.date.month != month:
            continue
        tasks[entry.task_id] += entry.hours
        weeks[week_of_month(entry.date)] += entry.hours

    lines = [SummaryLine(task_id=task_id, hours=hours) for task_id, hours in tasks.items()]
    lines.sort(key=lambda line: (-line.hours, line.task_id))
    return MonthSummary(
        year=year,
        month=month,
        tasks=lines,
        weeks=dict(weeks),
        total=sum(line.hours for line in lines),
    )


__all__ = [
    "DaySummary",
    "MonthSummary",
    "SummaryLine",
    "format_hours",
    "summarize_day",
    "summarize_month",
    "week_of_month",
]
