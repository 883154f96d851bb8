"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path

from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or "no output"
        return f"git {' '.join(self.args[1:])} exited {self.returncode}: {detail[:300]}"


class GitRunner:
    """Execute git commands asynchronously against a working copy."""

    def __init__(self, executable: Path | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def version(self) -> GitExecutionResult:
        return await self._invoke(None, "--version")

    async def run(self, cwd: Path, *args: str, input: str | None = None) -> GitExecutionResult:
        """Run ``git <args>`` inside ``cwd`` and return its captured output."""

        return await self._invoke(Path(cwd), *args, input=input)

    async def _invoke(
        self,
        cwd: Path | None,
        *args: str,
        input: str | None = None,
    ) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
            )
        except OSError as exc:
            raise GitRunnerError(f"Failed to start git in {cwd}: {exc}") from exc

        payload = input.encode("utf-8") if input is not None else None
        try:
            stdout_bytes, stderr_bytes = await process.communicate(payload)
        except asyncio.CancelledError:
            # Inspection timeouts cancel us; don't leave git running behind.
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)
