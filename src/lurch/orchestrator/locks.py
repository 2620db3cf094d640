"""Non-blocking mutual exclusion for pulls and deployments."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import ContextManager, Iterator, Set

from ..errors import BusyError


class KeyLockSet:
    """A set of keys where inserting a present key fails instead of blocking.

    Used to keep at most one deployment per project running. There is no
    queueing: a refused caller is expected to tell the user and give up.
    """

    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._mutex = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._mutex:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._mutex:
            self._keys.discard(key)

    def is_held(self, key: str) -> bool:
        with self._mutex:
            return key in self._keys

    @contextmanager
    def held(self, key: str) -> Iterator[None]:
        """Hold ``key`` for the duration of the block or raise BusyError."""
        if not self.try_acquire(key):
            raise BusyError(key)
        try:
            yield
        finally:
            self.release(key)


class PullToggle:
    """Process-wide flag that is on while an image pull is in flight."""

    _KEY = "image pull"

    def __init__(self) -> None:
        self._locks = KeyLockSet()

    @property
    def is_on(self) -> bool:
        return self._locks.is_held(self._KEY)

    def try_on(self) -> bool:
        return self._locks.try_acquire(self._KEY)

    def off(self) -> None:
        self._locks.release(self._KEY)

    def held(self) -> ContextManager[None]:
        return self._locks.held(self._KEY)
