from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from worklog_tracker.git import GitExecutionResult, GitNotFoundError, GitRunner
from worklog_tracker.git.utils import sanitize_environment


def fake_git(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "git"
    script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    script.chmod(0o755)
    return script


def test_git_runner_reports_version(tmp_path: Path) -> None:
    runner = GitRunner(fake_git(tmp_path, "echo 'git version 2.99.0'"))
    result = asyncio.run(runner.version())

    assert result.ok
    assert result.stdout.strip() == "git version 2.99.0"


def test_git_runner_passes_args_and_stdin(tmp_path: Path) -> None:
    runner = GitRunner(fake_git(tmp_path, 'echo "$@"; cat'))
    workdir = tmp_path / "work"
    workdir.mkdir()

    result = asyncio.run(runner.run(workdir, "log", "--stdin", input="abc\n"))

    assert result.ok
    assert result.stdout.splitlines() == ["log --stdin", "abc"]


def test_git_runner_runs_inside_cwd(tmp_path: Path) -> None:
    runner = GitRunner(fake_git(tmp_path, "pwd"))
    workdir = tmp_path / "work"
    workdir.mkdir()

    result = asyncio.run(runner.run(workdir, "status"))

    assert Path(result.stdout.strip()).resolve() == workdir.resolve()


def test_failed_command_is_described(tmp_path: Path) -> None:
    runner = GitRunner(fake_git(tmp_path, "echo 'fatal: not a git repository' >&2; exit 128"))

    result = asyncio.run(runner.run(tmp_path, "rev-parse", "HEAD"))

    assert not result.ok
    assert result.returncode == 128
    assert result.describe().endswith("exited 128: fatal: not a git repository")


def test_git_not_found(tmp_path: Path) -> None:
    with pytest.raises(GitNotFoundError):
        GitRunner(tmp_path / "missing")


def test_describe_falls_back_to_stdout() -> None:
    result = GitExecutionResult(args=("git", "log"), returncode=1, stdout="oops\n", stderr="")
    assert result.describe() == "git log exited 1: oops"


def test_sanitize_environment_isolates_git(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_DIR", "/elsewhere/.git")
    monkeypatch.setenv("GIT_WORK_TREE", "/elsewhere")
    env = sanitize_environment({"EXTRA": "1"})

    assert "GIT_DIR" not in env
    assert "GIT_WORK_TREE" not in env
    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["LC_ALL"] == "C"
    assert env["EXTRA"] == "1"
