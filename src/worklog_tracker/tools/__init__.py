"""Tool registration for the worklog tracker MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from fastmcp import FastMCP

from ..config import TrackerSettings
from ..maintenance import mark_synced, reset_repository
from ..repos import ConfigLoader, TrackerConfig
from ..scanner import ScanOrchestrator
from ..storage import ActivityLogStore, RepoStateStore, ScanLock
from ..summary import summarize_day, summarize_month

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[TrackerConfig], ScanOrchestrator]


@dataclass(slots=True)
class ToolHandles:
    run_scan: Any
    day_summary: Any
    month_summary: Any
    repo_state: Any
    reset_repository: Any
    mark_synced: Any
    scan_history: list[dict[str, Any]]


def _parse_day(value: str | None) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def register_tools(
    server: FastMCP,
    *,
    settings: TrackerSettings,
    loader: ConfigLoader,
    orchestrator_factory: OrchestratorFactory | None = None,
) -> ToolHandles:
    """Register the tracker's MCP tools on the server."""

    scan_history: list[dict[str, Any]] = []
    log_store = ActivityLogStore(settings.log_path)
    state_store = RepoStateStore(settings.state_path)

    def _lock() -> ScanLock:
        return ScanLock(settings.resolved_lock_path, timeout=settings.lock_timeout)

    def _default_factory(config: TrackerConfig) -> ScanOrchestrator:
        return ScanOrchestrator.from_settings(settings, config)

    factory = orchestrator_factory or _default_factory

    async def _run_scan() -> dict[str, Any]:
        """Scan every configured repository once and commit new log entries."""

        config = loader.load()
        orchestrator = factory(config)
        report = await orchestrator.run_scan(config.repositories)
        payload = report.to_dict()
        scan_history.append(payload)
        del scan_history[:-20]
        logger.info(
            "Scan completed via MCP",
            extra={"added": report.added, "errors": len(report.errors)},
        )
        return payload

    def _day_summary(day: str | None = None) -> dict[str, Any]:
        """Hours per task and repository for one day (defaults to today)."""

        return summarize_day(log_store.load(), _parse_day(day)).to_dict()

    def _month_summary(year: int | None = None, month: int | None = None) -> dict[str, Any]:
        """Hours per task and per week for a month (defaults to the current month)."""

        today = date.today()
        target_year = year or today.year
        target_month = month or today.month
        if not 1 <= target_month <= 12:
            raise ValueError("month must be between 1 and 12")
        return summarize_month(log_store.load(), target_year, target_month).to_dict()

    def _repo_state() -> dict[str, Any]:
        """Stored cursor and last inspection status per repository."""

        return {
            repo_id: cursor.model_dump(mode="json")
            for repo_id, cursor in sorted(state_store.load().items())
        }

    def _reset_repository(repo_id: str) -> dict[str, Any]:
        """Forget a repository's cursor so it is re-walked on the next scan."""

        removed = reset_repository(state_store, repo_id, lock=_lock())
        return {"repository": repo_id, "reset": removed}

    def _mark_synced(entry_ids: list[str]) -> dict[str, Any]:
        """Flag log entries as synced to the issue tracker."""

        changed = mark_synced(log_store, entry_ids, lock=_lock())
        return {"requested": len(entry_ids), "changed": changed}

    tool_run_scan = server.tool(
        name="run_scan",
        description=(
            "Inspect every configured repository for new commits, append the derived "
            "time-log entries, and return a per-repository report."
        ),
    )(_run_scan)

    tool_day = server.tool(
        name="day_summary",
        description="Summarize logged hours for a day (YYYY-MM-DD, default today).",
    )(_day_summary)

    tool_month = server.tool(
        name="month_summary",
        description="Summarize logged hours for a month, grouped by task and week.",
    )(_month_summary)

    tool_state = server.tool(
        name="repo_state",
        description="Show the stored branch cursors and error status for each repository.",
    )(_repo_state)

    tool_reset = server.tool(
        name="reset_repository",
        description="Drop a repository's cursor; already-logged commits are not billed again.",
    )(_reset_repository)

    tool_mark = server.tool(
        name="mark_synced",
        description="Mark log entries as sent to the issue tracker.",
    )(_mark_synced)

    return ToolHandles(
        run_scan=tool_run_scan,
        day_summary=tool_day,
        month_summary=tool_month,
        repo_state=tool_state,
        reset_repository=tool_reset,
        mark_synced=tool_mark,
        scan_history=scan_history,
    )


__all__ = ["OrchestratorFactory", "ToolHandles", "register_tools"]
