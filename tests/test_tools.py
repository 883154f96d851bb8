from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

import pytest

from worklog_tracker.config import TrackerSettings
from worklog_tracker.inspector import InspectionResult
from worklog_tracker.repos import ConfigLoader, RepoConfig, TrackerConfig
from worklog_tracker.scanner import ScanOrchestrator
from worklog_tracker.storage import (
    ActivityLog,
    ActivityLogStore,
    LogEntry,
    RepoCursor,
    RepoStateStore,
)
from worklog_tracker.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubInspector:
    def __init__(self, entries: list[LogEntry]) -> None:
        self._entries = entries

    async def inspect(self, repo: RepoConfig, cursor: RepoCursor) -> InspectionResult:
        return InspectionResult(entries=list(self._entries), cursor=RepoCursor(branches={"main": "f" * 40}))


def make_entry(entry_id: str, day: date, task: str, hours: float = 0.25) -> LogEntry:
    return LogEntry(id=entry_id, date=day, task_id=task, repository="api", hours=hours)


@pytest.fixture
def registered(settings: TrackerSettings, tmp_path: Path):
    settings.config_path.parent.mkdir(parents=True, exist_ok=True)
    settings.config_path.write_text(
        f"repositories:\n  - {tmp_path / 'api'}\n", encoding="utf-8"
    )
    server = StubServer()
    entries = [make_entry("e1", date(2024, 3, 4), "ABC-1"), make_entry("e2", date(2024, 3, 4), "ABC-2", 1.0)]

    def factory(config: TrackerConfig) -> ScanOrchestrator:
        return ScanOrchestrator(
            RepoStateStore(settings.state_path),
            ActivityLogStore(settings.log_path),
            StubInspector(entries),
        )

    handles = register_tools(
        server,
        settings=settings,
        loader=ConfigLoader(settings.config_path),
        orchestrator_factory=factory,
    )
    return server, handles, settings


def test_register_tools_exposes_all_tools(registered) -> None:
    server, _, _ = registered
    assert set(server._tools) == {
        "run_scan",
        "day_summary",
        "month_summary",
        "repo_state",
        "reset_repository",
        "mark_synced",
    }


def test_run_scan_tool_records_history(registered) -> None:
    _, handles, settings = registered

    payload = asyncio.run(handles.run_scan.fn())

    assert payload["added"] == 2
    assert payload["repositories"][0]["repository"] == "api"
    assert handles.scan_history == [payload]
    assert len(ActivityLogStore(settings.log_path).load()) == 2

    again = asyncio.run(handles.run_scan.fn())
    assert again["added"] == 0
    assert again["repositories"][0]["duplicates"] == 2
    assert len(handles.scan_history) == 2


def test_summary_tools(registered) -> None:
    _, handles, _ = registered
    asyncio.run(handles.run_scan.fn())

    day = handles.day_summary.fn("2024-03-04")
    assert day["total"] == 1.25
    assert [task["task_id"] for task in day["tasks"]] == ["ABC-2", "ABC-1"]

    month = handles.month_summary.fn(2024, 3)
    assert month["month"] == "2024-03"
    assert month["total"] == 1.25

    with pytest.raises(ValueError, match="expected YYYY-MM-DD"):
        handles.day_summary.fn("04/03/2024")
    with pytest.raises(ValueError):
        handles.month_summary.fn(2024, 13)


def test_repo_state_and_reset_tools(registered) -> None:
    _, handles, settings = registered
    asyncio.run(handles.run_scan.fn())

    state = handles.repo_state.fn()
    assert state == {"api": {"branches": {"main": "f" * 40}, "status": "ok", "error": None}}

    assert handles.reset_repository.fn("api") == {"repository": "api", "reset": True}
    assert handles.repo_state.fn() == {}
    assert not settings.resolved_lock_path.exists()


def test_mark_synced_tool(registered) -> None:
    _, handles, settings = registered
    ActivityLogStore(settings.log_path).save(
        ActivityLog([make_entry("e1", date(2024, 3, 4), "ABC-1")])
    )

    assert handles.mark_synced.fn(["e1", "unknown"]) == {"requested": 2, "changed": 1}
    assert ActivityLogStore(settings.log_path).load().get("e1").synced
