"""Crash-safe file primitives shared by the state and activity log stores."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Base class for store failures; always fatal to a scan."""


class StoreCorruptError(StoreError):
    """Raised when a persisted store cannot be parsed."""


class StoreWriteError(StoreError):
    """Raised when persisting a store fails; the previous file is left intact."""


class StoreLockedError(StoreError):
    """Raised when another process holds the scan lock for too long."""


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` so readers only ever see the old or the new file."""

    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as exc:
        raise StoreWriteError(f"Failed to prepare {path} for writing: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException as exc:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        if isinstance(exc, OSError):
            raise StoreWriteError(f"Failed to write {path}: {exc}") from exc
        raise


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class ScanLock:
    """Advisory lock file giving a single writer access to both stores.

    The file holds the owner's pid; a lock left behind by a process that no longer
    exists is broken automatically.
    """

    def __init__(
        self,
        path: Path,
        *,
        timeout: float = 10.0,
        poll_interval: float = 0.1,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._path = Path(path).expanduser()
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if self._held:
            raise StoreLockedError(f"Lock {self._path} is already held by this process")
        deadline = self._clock() + self._timeout
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreWriteError(f"Failed to create lock directory for {self._path}: {exc}") from exc

        while True:
            try:
                fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._break_stale():
                    continue
                if self._clock() >= deadline:
                    raise StoreLockedError(
                        f"Another scan holds {self._path}; remove it if no tracker is running"
                    ) from None
                self._sleep(self._poll_interval)
                continue
            except OSError as exc:
                raise StoreWriteError(f"Failed to create lock file {self._path}: {exc}") from exc

            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            self._held = True
            return

    def _read_owner(self, path: Path) -> str | None:
        """Pid text stored in ``path``; None when the file is gone, empty when unreadable."""

        try:
            return path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            return ""

    def _break_stale(self) -> bool:
        """Remove a lock whose owner is dead; True when acquiring should be retried.

        The file is first renamed to a name private to this process, so only one
        breaker can claim it. If the claimed file turns out to be a fresh lock
        written after the owner was read, it is linked back into place.
        """

        owner = self._read_owner(self._path)
        if owner is None:
            return True
        if not owner.isdigit() or _pid_alive(int(owner)):
            return False

        claimed = self._path.with_name(f".{self._path.name}.{os.getpid()}.{id(self)}.stale")
        try:
            os.rename(self._path, claimed)
        except FileNotFoundError:
            return True
        except OSError:
            return False

        if self._read_owner(claimed) != owner:
            try:
                os.link(claimed, self._path)
            except FileExistsError:
                logger.error(
                    "Scan lock replaced while restoring a live lock",
                    extra={"path": str(self._path)},
                )
            except OSError:
                try:
                    os.rename(claimed, self._path)
                except OSError as exc:
                    raise StoreWriteError(f"Failed to restore scan lock {self._path}: {exc}") from exc
            claimed.unlink(missing_ok=True)
            return False

        logger.warning("Breaking stale scan lock", extra={"path": str(self._path), "pid": owner})
        claimed.unlink(missing_ok=True)
        return True

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> "ScanLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


__all__ = [
    "ScanLock",
    "StoreCorruptError",
    "StoreError",
    "StoreLockedError",
    "StoreWriteError",
    "atomic_write_text",
]
