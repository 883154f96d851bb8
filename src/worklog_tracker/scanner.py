"""Scan orchestration: fan inspections out over repositories and commit the results once."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from .config import TrackerSettings
from .git import GitRunner
from .inspector import InspectionResult, RepositoryInspector
from .repos import RepoConfig, TrackerConfig
from .storage import (
    ActivityLog,
    ActivityLogStore,
    RepoCursor,
    RepoStateStore,
    RepoStateTable,
    ScanLock,
)


class InspectorProtocol(Protocol):
    """Minimal inspector API used by the orchestrator."""

    async def inspect(self, repo: RepoConfig, cursor: RepoCursor) -> InspectionResult:
        ...


@dataclass(slots=True)
class RepoScanResult:
    repository: str
    ok: bool
    added: int = 0
    duplicates: int = 0
    error: str | None = None


@dataclass(slots=True)
class ScanReport:
    """Outcome of one scan across every configured repository."""

    results: list[RepoScanResult] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    state_written: bool = False
    log_written: bool = False

    @property
    def any_added(self) -> bool:
        return any(result.added for result in self.results)

    @property
    def any_errors(self) -> bool:
        return any(not result.ok for result in self.results)

    @property
    def added(self) -> int:
        return sum(result.added for result in self.results)

    @property
    def errors(self) -> dict[str, str]:
        return {
            result.repository: result.error or "unknown error"
            for result in self.results
            if not result.ok
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "any_added": self.any_added,
            "any_errors": self.any_errors,
            "added": self.added,
            "state_written": self.state_written,
            "log_written": self.log_written,
            "repositories": [
                {
                    "repository": result.repository,
                    "ok": result.ok,
                    "added": result.added,
                    "duplicates": result.duplicates,
                    "error": result.error,
                }
                for result in self.results
            ],
        }


class ScanOrchestrator:
    """Runs a complete scan and is the only writer of both stores."""

    def __init__(
        self,
        state_store: RepoStateStore,
        log_store: ActivityLogStore,
        inspector: InspectorProtocol,
        *,
        lock: ScanLock | None = None,
        max_concurrency: int = 8,
        inspect_timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._state_store = state_store
        self._log_store = log_store
        self._inspector = inspector
        self._lock = lock
        self._max_concurrency = max_concurrency
        self._inspect_timeout = inspect_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: TrackerSettings,
        config: TrackerConfig,
        *,
        runner: GitRunner | None = None,
        logger: logging.Logger | None = None,
    ) -> "ScanOrchestrator":
        runner = runner or GitRunner(Path(settings.git_path) if settings.git_path else None)
        return cls(
            RepoStateStore(settings.state_path),
            ActivityLogStore(settings.log_path),
            RepositoryInspector(runner, config, logger=logger),
            lock=ScanLock(settings.resolved_lock_path, timeout=settings.lock_timeout),
            max_concurrency=settings.max_concurrency,
            inspect_timeout=settings.inspect_timeout,
            logger=logger,
        )

    def scan(self, repos: Sequence[RepoConfig]) -> ScanReport:
        """Synchronous entry point for callers without a running event loop."""

        return asyncio.run(self.run_scan(repos))

    async def run_scan(self, repos: Sequence[RepoConfig]) -> ScanReport:
        if self._lock is not None:
            await asyncio.to_thread(self._lock.acquire)
        try:
            return await self._run_locked(list(repos))
        finally:
            if self._lock is not None:
                self._lock.release()

    async def _run_locked(self, repos: list[RepoConfig]) -> ScanReport:
        report = ScanReport(started_at=self._clock())
        log = self._log_store.load()
        state = self._state_store.load()

        self._logger.info("Checking repositories", extra={"count": len(repos)})
        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(
            *(self._inspect_one(semaphore, repo, state.get(repo.id, RepoCursor())) for repo in repos)
        )

        for repo, outcome in zip(repos, outcomes):
            report.results.append(self._merge(repo, outcome, log, state))

        # Log is written before state; cursors never run ahead of persisted entries.
        if report.any_added:
            self._log_store.save(log)
            report.log_written = True
            self._logger.info(
                "Activity log updated",
                extra={"path": str(self._log_store.path), "added": report.added},
            )
        self._state_store.save(state)
        report.state_written = True

        report.finished_at = self._clock()
        if report.any_errors:
            self._logger.warning(
                "Scan finished with repository errors", extra={"errors": report.errors}
            )
        return report

    async def _inspect_one(
        self,
        semaphore: asyncio.Semaphore,
        repo: RepoConfig,
        cursor: RepoCursor,
    ) -> InspectionResult:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self._inspector.inspect(repo, cursor), timeout=self._inspect_timeout
                )
            except asyncio.TimeoutError:
                message = f"inspection timed out after {self._inspect_timeout:g}s"
            except Exception as exc:  # one repository must not sink the scan
                self._logger.exception(
                    "Inspection crashed", extra={"repository": repo.id}
                )
                message = f"inspection failed: {exc}"
        return InspectionResult(entries=[], cursor=cursor.with_error(message))

    def _merge(
        self,
        repo: RepoConfig,
        outcome: InspectionResult,
        log: ActivityLog,
        state: RepoStateTable,
    ) -> RepoScanResult:
        added = duplicates = 0
        for entry in outcome.entries:
            if log.add(entry):
                added += 1
            else:
                duplicates += 1
                self._logger.warning(
                    "Dropped duplicate log entry",
                    extra={"repository": repo.id, "entry_id": entry.id, "task_id": entry.task_id},
                )
        state[repo.id] = outcome.cursor
        if added:
            self._logger.info(
                "Logged activity", extra={"repository": repo.id, "entries": added}
            )
        return RepoScanResult(
            repository=repo.id,
            ok=outcome.ok,
            added=added,
            duplicates=duplicates,
            error=outcome.error,
        )


__all__ = ["InspectorProtocol", "RepoScanResult", "ScanOrchestrator", "ScanReport"]
