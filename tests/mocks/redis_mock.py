"""
MockRedis: synchronous in-memory Redis stand-in for unit tests.

Supports: get, set (nx, ex), incr, expire, delete.
Expiry is enforced lazily on read.
"""

import time


class MockRedis:
    def __init__(self):
        self._store: dict[str, object] = {}
        self._expiry: dict[str, float] = {}

    def _expired(self, key: str) -> bool:
        if key in self._expiry and time.time() > self._expiry[key]:
            self._store.pop(key, None)
            self._expiry.pop(key, None)
            return True
        return False

    def get(self, key: str):
        if self._expired(key):
            return None
        return self._store.get(key)

    def set(self, key: str, value, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in self._store and not self._expired(key):
            return None
        self._store[key] = value
        if ex:
            self._expiry[key] = time.time() + ex
        return True

    def incr(self, key: str) -> int:
        self._expired(key)
        val = int(self._store.get(key, 0)) + 1
        self._store[key] = str(val)
        return val

    def expire(self, key: str, seconds: int) -> int:
        if key in self._store:
            self._expiry[key] = time.time() + seconds
            return 1
        return 0

    def delete(self, key: str) -> int:
        existed = key in self._store
        self._store.pop(key, None)
        self._expiry.pop(key, None)
        return 1 if existed else 0
