"""
Session Locks — Per-villa mutual exclusion for progress aggregation.

Writes for one villa are serialized so that recomputing stage status and
session counters always sees a consistent snapshot. Different villas never
contend. Within one process this registry does the work; across processes the
store also takes a row lock on the session (SELECT ... FOR UPDATE).

A villa's lock only lives while someone holds or waits for it, so the registry
stays as small as the number of villas being written right now.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict

from villa_onboarding.errors import PersistenceError

logger = logging.getLogger(__name__)


class SessionLockRegistry:
    """Hands out one lock per villa id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, villa_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(villa_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[villa_id] = lock
            self._users[villa_id] = self._users.get(villa_id, 0) + 1
            return lock

    def _checkin(self, villa_id: str):
        with self._guard:
            remaining = self._users[villa_id] - 1
            if remaining:
                self._users[villa_id] = remaining
            else:
                del self._users[villa_id]
                del self._locks[villa_id]

    @contextmanager
    def hold(self, villa_id: str, timeout: float):
        """Acquire the villa's lock, waiting at most `timeout` seconds.

        Raises:
            PersistenceError: if the lock could not be acquired in time.
        """
        lock = self._checkout(villa_id)
        try:
            if not lock.acquire(timeout=timeout):
                logger.warning("Timed out after %.1fs waiting for session lock on villa %s", timeout, villa_id)
                raise PersistenceError(f"Timed out waiting for onboarding session lock for villa {villa_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(villa_id)


session_locks = SessionLockRegistry()
