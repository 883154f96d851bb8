from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from worklog_tracker.config import TrackerSettings


class GitRepo:
    """Throwaway repository driven through the real git CLI."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._counter = 0

    def _env(self, email: str, when: str) -> dict[str, str]:
        env = os.environ.copy()
        for key in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
            env.pop(key, None)
        env.update(
            {
                "GIT_CONFIG_GLOBAL": os.devnull,
                "GIT_CONFIG_NOSYSTEM": "1",
                "GIT_AUTHOR_NAME": "Dev",
                "GIT_AUTHOR_EMAIL": email,
                "GIT_AUTHOR_DATE": when,
                "GIT_COMMITTER_NAME": "Dev",
                "GIT_COMMITTER_EMAIL": email,
                "GIT_COMMITTER_DATE": when,
            }
        )
        return env

    def git(self, *args: str, email: str = "dev@example.com", when: str = "2024-03-04T10:00:00+00:00") -> str:
        process = subprocess.run(
            ["git", "-c", "commit.gpgsign=false", *args],
            cwd=self.path,
            env=self._env(email, when),
            capture_output=True,
            text=True,
            check=True,
        )
        return process.stdout.strip()

    def commit(
        self,
        message: str,
        *,
        when: str = "2024-03-04T10:00:00+00:00",
        email: str = "dev@example.com",
    ) -> str:
        self._counter += 1
        branch = self.git("symbolic-ref", "--short", "HEAD").replace("/", "_")
        target = self.path / f"{branch}-{self._counter}.txt"
        target.write_text(f"{message}\n", encoding="utf-8")
        self.git("add", target.name)
        self.git("commit", "-q", "-m", message, email=email, when=when)
        return self.head()

    def checkout(self, branch: str, *, create: bool = False) -> None:
        if create:
            self.git("checkout", "-q", "-b", branch)
        else:
            self.git("checkout", "-q", branch)

    def head(self, ref: str = "HEAD") -> str:
        return self.git("rev-parse", ref)


@pytest.fixture
def make_repo(tmp_path: Path):
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    def factory(name: str = "project") -> GitRepo:
        path = tmp_path / name
        path.mkdir(parents=True)
        repo = GitRepo(path)
        repo.git("init", "-q")
        repo.git("symbolic-ref", "HEAD", "refs/heads/main")
        return repo

    return factory


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TrackerSettings:
    home = tmp_path / "tracker"
    monkeypatch.setenv("WORKLOG_CONFIG_PATH", str(home / "config.yaml"))
    monkeypatch.setenv("WORKLOG_STATE_PATH", str(home / "repo_activity_state.json"))
    monkeypatch.setenv("WORKLOG_LOG_PATH", str(home / "activity_log.csv"))
    monkeypatch.setenv("WORKLOG_LOCK_TIMEOUT", "0")
    monkeypatch.delenv("WORKLOG_LOCK_PATH", raising=False)
    monkeypatch.delenv("GIT_PATH", raising=False)
    return TrackerSettings()
