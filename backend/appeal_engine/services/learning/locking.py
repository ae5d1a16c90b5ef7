"""
Per-category locking for corpus mutation.

Append-then-recompute and template replacement for one ticket category
run as a critical section. Different categories proceed in parallel up
to the shared metrics recompute, which holds METRICS_LOCK. Lock order is
always category first, then metrics.

Usage:
    locks = CategoryLockManager()
    with locks.lock("pcn"):
        append_and_recompute()
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from ..errors import CorpusStoreError

logger = logging.getLogger(__name__)


DEFAULT_LOCK_TIMEOUT = 30.0
METRICS_LOCK = "__metrics__"


class CategoryLockManager:
    """In-process named locks, one per ticket category."""

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._meta_lock = threading.Lock()

    def _get_lock(self, name: str) -> threading.Lock:
        with self._meta_lock:
            if name not in self._locks:
                self._locks[name] = threading.Lock()
            return self._locks[name]

    @contextmanager
    def lock(self, category: str) -> Iterator[None]:
        """
        Hold the category lock for the duration of the block.

        Raises:
            CorpusStoreError: If the lock cannot be acquired within the timeout
        """
        lock = self._get_lock(category)
        if not lock.acquire(timeout=self.timeout):
            logger.error(f"Timed out waiting for category lock: {category}")
            raise CorpusStoreError(f"Category '{category}' is busy, retry later")
        try:
            yield
        finally:
            lock.release()
