"""Operator actions on the stores, serialized with scans through the scan lock."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Iterable

from .storage import ActivityLogStore, RepoStateStore, ScanLock

logger = logging.getLogger(__name__)


def reset_repository(
    state_store: RepoStateStore,
    repo_id: str,
    *,
    lock: ScanLock | None = None,
) -> bool:
    """Forget a repository's cursor so its history is walked again on the next scan.

    Entries already in the log keep their ids, so re-walked commits are dropped as
    duplicates rather than billed twice.
    """

    with lock or nullcontext():
        state = state_store.load()
        if repo_id not in state:
            return False
        del state[repo_id]
        state_store.save(state)
    logger.info("Reset repository cursor", extra={"repository": repo_id})
    return True


def mark_synced(
    log_store: ActivityLogStore,
    entry_ids: Iterable[str],
    *,
    lock: ScanLock | None = None,
) -> int:
    """Flag entries as synced to the external tracker; returns how many changed."""

    with lock or nullcontext():
        log = log_store.load()
        changed = log.mark_synced(entry_ids)
        if changed:
            log_store.save(log)
    logger.info("Marked entries synced", extra={"changed": changed})
    return changed


__all__ = ["mark_synced", "reset_repository"]
