"""FastMCP server bootstrap for the worklog tracker."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import TrackerSettings, get_settings
from .git import GitNotFoundError, GitRunner
from .repos import ConfigLoadError, ConfigLoader
from .scanner import ScanOrchestrator
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the tracker."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_server(
    settings: Optional[TrackerSettings] = None,
    git_runner: GitRunner | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server exposing scan and log tools."""

    settings = settings or get_settings()
    loader = ConfigLoader(settings.config_path)

    git_metadata: dict[str, Any] = {
        "available": False,
        "version": None,
        "error": None,
    }
    if git_runner is None:
        try:
            git_runner = GitRunner(Path(settings.git_path) if settings.git_path else None)
        except GitNotFoundError as exc:
            git_metadata["error"] = str(exc)
    if git_runner is not None:
        git_metadata["available"] = True
        version_result = _run_sync(git_runner.version())
        if version_result.ok:
            git_metadata["version"] = version_result.stdout.strip()
        else:
            git_metadata["error"] = version_result.stderr.strip() or "git --version failed"

    runner = git_runner

    def _orchestrator_factory(config):
        if runner is None:
            raise GitNotFoundError(git_metadata["error"] or "git executable not available")
        return ScanOrchestrator.from_settings(settings, config, runner=runner)

    server = FastMCP(
        name="Worklog Tracker",
        instructions=(
            "Tracks commits across local git repositories and converts them into "
            "time-log entries. Use run_scan to record new work, and the summary tools "
            "to review logged hours."
        ),
    )

    handles = register_tools(
        server,
        settings=settings,
        loader=loader,
        orchestrator_factory=_orchestrator_factory,
    )

    @server.resource(
        "resource://worklog/status",
        name="worklog_status",
        description="Provides the current runtime status for the worklog tracker.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        try:
            config = loader.load()
            repositories = [repo.id for repo in config.repositories]
            config_error: str | None = None
        except ConfigLoadError as exc:
            repositories = []
            config_error = str(exc)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "config": {
                "path": str(settings.config_path),
                "repositories": repositories,
                "error": config_error,
            },
            "git": {"path": settings.git_path, **git_metadata},
            "storage": {
                "state_path": str(settings.state_path),
                "log_path": str(settings.log_path),
                "lock_path": str(settings.resolved_lock_path),
            },
            "last_scan": handles.scan_history[-1] if handles.scan_history else None,
        }
        return json.dumps(payload)

    setattr(server, "git_runner", git_runner)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_resource", status_resource)
    return server


def main() -> None:
    """Entry point for running the tracker MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching worklog tracker MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "git_available": getattr(server, "git_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
