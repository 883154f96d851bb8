"""Derives time-log entries from new commits in a single repository."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from .git import GitExecutionResult, GitRunner, GitRunnerError
from .repos import RepoConfig, TrackerConfig
from .storage import LogEntry, RepoCursor

# hash, parents, author date (strict ISO), author email, subject
_LOG_FORMAT = "%H%x1f%P%x1f%aI%x1f%ae%x1f%s"
_HEADS_PREFIX = "refs/heads/"


class RepositoryUnreadableError(RuntimeError):
    """Raised when a configured repository is missing, invalid, or inaccessible."""


@dataclass(slots=True)
class CommitInfo:
    sha: str
    parents: tuple[str, ...]
    authored_at: datetime
    author_email: str
    subject: str

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(slots=True)
class InspectionResult:
    """New entries found in one repository and the cursor to store for it."""

    entries: list[LogEntry] = field(default_factory=list)
    cursor: RepoCursor = field(default_factory=RepoCursor)

    @property
    def ok(self) -> bool:
        return self.cursor.status == "ok"

    @property
    def error(self) -> str | None:
        return self.cursor.error


def extract_task_id(text: str, pattern: re.Pattern[str]) -> str | None:
    match = pattern.search(text)
    return match.group(0).upper() if match else None


def entry_id_for(repository: str, commit_sha: str) -> str:
    """Content-derived id: the same commit in the same repository always maps to one entry."""

    return hashlib.sha1(f"{repository}:{commit_sha}".encode("utf-8")).hexdigest()


def parse_log_output(output: str) -> list[CommitInfo]:
    commits: list[CommitInfo] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\x1f", 4)
        if len(parts) != 5:
            raise RepositoryUnreadableError(f"Unexpected git log output: {line[:200]!r}")
        sha, parents, authored, email, subject = parts
        commits.append(
            CommitInfo(
                sha=sha,
                parents=tuple(parents.split()),
                authored_at=datetime.fromisoformat(authored),
                author_email=email.strip().lower(),
                subject=subject,
            )
        )
    return commits


class RepositoryInspector:
    """Walks each local branch past its cursor and turns qualifying commits into entries.

    Cursors never move backwards: a branch reset to an older commit keeps its recorded
    marker, and failures return the caller's cursor flagged with ``status="error"``.
    """

    def __init__(
        self,
        runner: GitRunner,
        config: TrackerConfig,
        *,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._runner = runner
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger(__name__)

    async def inspect(self, repo: RepoConfig, cursor: RepoCursor) -> InspectionResult:
        try:
            return await self._inspect(repo, cursor)
        except (RepositoryUnreadableError, GitRunnerError) as exc:
            self._logger.warning(
                "Repository unreadable",
                extra={"repository": repo.id, "path": str(repo.path), "error": str(exc)},
            )
            return InspectionResult(entries=[], cursor=cursor.with_error(str(exc)))

    async def _inspect(self, repo: RepoConfig, cursor: RepoCursor) -> InspectionResult:
        if not repo.path.exists():
            raise RepositoryUnreadableError(f"Repository path does not exist: {repo.path}")
        if not repo.path.is_dir():
            raise RepositoryUnreadableError(f"Repository path is not a directory: {repo.path}")

        probe = await self._git(repo, "rev-parse", "--is-inside-work-tree", check=False)
        if not probe.ok or probe.stdout.strip() != "true":
            raise RepositoryUnreadableError(f"Not a git repository: {repo.path}")

        heads = await self._list_branches(repo)
        known = await self._existing_commits(repo, cursor.branches.values())
        pattern = self._config.pattern_for(repo)
        hours = self._config.hours_for(repo)

        branches = dict(cursor.branches)
        seen: set[str] = set()
        entries: list[LogEntry] = []

        for branch, head in sorted(heads.items()):
            previous = cursor.branches.get(branch)
            if previous == head:
                continue

            has_previous = previous is not None and previous in known
            if has_previous and await self._is_ancestor(repo, head, previous):
                self._logger.debug(
                    "Branch moved behind its cursor; keeping recorded commit",
                    extra={"repository": repo.id, "branch": branch, "cursor": previous, "head": head},
                )
                continue

            since = None if has_previous else self._lookback_start()
            for commit in await self._walk(repo, head, exclude=known, since=since):
                if commit.sha in seen:
                    continue
                seen.add(commit.sha)
                if not self._qualifies(repo, commit):
                    continue
                entries.append(self._entry_for(repo, branch, commit, pattern, hours))

            branches[branch] = head

        self._logger.info(
            "Inspected repository",
            extra={
                "repository": repo.id,
                "branches": len(heads),
                "commits_seen": len(seen),
                "entries": len(entries),
            },
        )
        return InspectionResult(entries=entries, cursor=cursor.advanced(branches))

    async def _git(
        self,
        repo: RepoConfig,
        *args: str,
        input: str | None = None,
        check: bool = True,
    ) -> GitExecutionResult:
        result = await self._runner.run(repo.path, *args, input=input)
        if check and not result.ok:
            raise RepositoryUnreadableError(f"{repo.path}: {result.describe()}")
        return result

    async def _list_branches(self, repo: RepoConfig) -> dict[str, str]:
        result = await self._git(
            repo, "for-each-ref", "--format=%(refname)%09%(objectname)", "refs/heads"
        )
        heads: dict[str, str] = {}
        for line in result.stdout.splitlines():
            refname, _, sha = line.partition("\t")
            if refname.startswith(_HEADS_PREFIX) and sha:
                heads[refname[len(_HEADS_PREFIX):]] = sha.strip()
        return heads

    async def _existing_commits(self, repo: RepoConfig, shas: Iterable[str]) -> set[str]:
        """Recorded commits that still exist; gc'd or rewritten ones can't be used as bounds."""

        wanted = sorted(set(shas))
        if not wanted:
            return set()
        result = await self._git(repo, "cat-file", "--batch-check", input="\n".join(wanted) + "\n")
        existing: set[str] = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "commit":
                existing.add(parts[0])
        return existing

    async def _is_ancestor(self, repo: RepoConfig, ancestor: str, descendant: str) -> bool:
        result = await self._git(
            repo, "merge-base", "--is-ancestor", ancestor, descendant, check=False
        )
        if result.returncode in (0, 1):
            return result.returncode == 0
        raise RepositoryUnreadableError(f"{repo.path}: {result.describe()}")

    async def _walk(
        self,
        repo: RepoConfig,
        head: str,
        *,
        exclude: Iterable[str],
        since: datetime | None,
    ) -> list[CommitInfo]:
        args = ["log", "--stdin", "--reverse", "--no-color", f"--format={_LOG_FORMAT}"]
        if since is not None:
            args.append(f"--since={since.isoformat()}")
        revisions = [head, *(f"^{sha}" for sha in sorted(exclude))]
        result = await self._git(repo, *args, input="\n".join(revisions) + "\n")
        return parse_log_output(result.stdout)

    def _lookback_start(self) -> datetime | None:
        days = self._config.first_scan_lookback_days
        if days is None:
            return None
        return self._clock() - timedelta(days=days)

    @staticmethod
    def _qualifies(repo: RepoConfig, commit: CommitInfo) -> bool:
        if commit.is_merge:
            return False
        return not repo.authors or commit.author_email in repo.authors

    @staticmethod
    def _entry_for(
        repo: RepoConfig,
        branch: str,
        commit: CommitInfo,
        pattern: re.Pattern[str],
        hours: float,
    ) -> LogEntry:
        task_id = (
            extract_task_id(commit.subject, pattern)
            or extract_task_id(branch, pattern)
            or branch
        )
        return LogEntry(
            id=entry_id_for(repo.id, commit.sha),
            date=commit.authored_at.date(),
            task_id=task_id,
            repository=repo.id,
            hours=hours,
        )


__all__ = [
    "CommitInfo",
    "InspectionResult",
    "RepositoryInspector",
    "RepositoryUnreadableError",
    "entry_id_for",
    "extract_task_id",
    "parse_log_output",
]
