"""
Per-GSTIN in-process locks for the credit ledger.

``EntityLockRegistry`` hands out one ``threading.Lock`` per GSTIN so that
two threads of the same process never interleave appends to one ledger.
Across processes the ``credit_ledger_heads`` row lock does the same job.
SQLite ignores ``FOR UPDATE``, so there the thread lock is the only
serialization.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from gst_kernel.logging_config import get_logger

logger = get_logger("modules.rcm.locks")


class EntityLockRegistry:
    """Lazily created lock per entity key; safe to share between threads."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self.lock_for(key)
        lock.acquire()
        logger.debug("entity_lock_acquired", extra={"entity_key": key})
        try:
            yield
        finally:
            lock.release()
            logger.debug("entity_lock_released", extra={"entity_key": key})

    def __len__(self) -> int:
        return len(self._locks)
