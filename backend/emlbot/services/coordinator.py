"""
Per-file deduplication over a non-transactional key-value store.

Slack announces one upload several times: a ``message``/``file_share`` event,
a standalone ``file_shared`` event, and retries of either. Every one of them
funnels through FileLockCoordinator keyed by the Slack file ID, so at most one
attempt per file proceeds and at most one completes.

Records (all in the coordination namespace):
  lock:{file_id}        "held:<ts>" while an attempt runs, "released:<ts>" after.
                        Never deleted; any value means "someone already started".
  processing:{file_id}  "running:<ts>" → "finished:<ts>".
  done:{file_id}        "<ts>", written once on success.

The store has no compare-and-swap, so read-then-write leaves a race window
between two concurrent first deliveries. The loser of that race produces a
duplicate reply, which is acceptable. A process that dies while holding the
lock leaves the file permanently marked; there is no expiry.

Usage:
    if not coordinator.try_acquire(file_id):
        return
    succeeded = False
    try:
        ...
        succeeded = True
    finally:
        coordinator.finalize(file_id, succeeded)
"""

import logging
import time
from typing import Callable

from emlbot.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def _lock_key(file_id: str) -> str:
    return f"lock:{file_id}"


def _processing_key(file_id: str) -> str:
    return f"processing:{file_id}"


def _done_key(file_id: str) -> str:
    return f"done:{file_id}"


class FileLockCoordinator:
    """Advisory lock/done protocol for file IDs."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def _stamp(self) -> str:
        return str(int(self._clock() * 1000))

    def try_acquire(self, file_id: str) -> bool:
        """
        Claim ``file_id`` for processing.

        Returns False (and writes nothing further) when another attempt has
        already taken the lock or the file was already completed.
        """
        if self._store.get(_lock_key(file_id)) is not None:
            logger.info(f"File {file_id} already locked; skipping duplicate delivery")
            return False

        self._store.set(_lock_key(file_id), f"held:{self._stamp()}")

        if self._store.get(_done_key(file_id)) is not None:
            logger.info(f"File {file_id} already done; skipping")
            return False

        self._store.set(_processing_key(file_id), f"running:{self._stamp()}")
        return True

    def finalize(self, file_id: str, succeeded: bool) -> None:
        """Record the outcome. Called on every exit path after a successful acquire."""
        stamp = self._stamp()
        if succeeded:
            self._store.set(_done_key(file_id), stamp)
        self._store.set(_processing_key(file_id), f"finished:{stamp}")
        self._store.set(_lock_key(file_id), f"released:{stamp}")

