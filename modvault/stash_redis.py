"""Distributed single-flight stashing guarded by a Redis lock."""

from __future__ import annotations

from contextlib import suppress
from typing import Any

import redis

from modvault.errors import ProxyError
from modvault.stash import Stasher, Wrapper
from modvault.storage.base import Checker

_LOCK_TIMEOUT = 5 * 60
_RETRY_DELAY = 1.0
_RETRY_COUNT = 60 * 5


def _lock_name(mod: str, ver: str) -> str:
    return f"{mod}@{ver}"


class RedisLockStasher(Stasher):
    """Stashes a module version at most once across processes sharing Redis."""

    def __init__(self, client: Any, stasher: Stasher, checker: Checker) -> None:
        self._client = client
        self._stasher = stasher
        self._checker = checker

    def _stash_locked(self, mod: str, ver: str) -> str:
        op = "redis.Stash"
        try:
            if self._checker.exists(mod, ver):
                return ver
        except Exception as err:
            raise ProxyError(op, cause=err) from err
        try:
            return self._stasher.stash(mod, ver)
        except Exception as err:
            raise ProxyError(op, cause=err) from err

    def stash(self, mod: str, ver: str) -> str:
        op = "redis.Stash"
        lock = self._client.lock(
            _lock_name(mod, ver),
            timeout=_LOCK_TIMEOUT,
            sleep=_RETRY_DELAY,
            blocking_timeout=_RETRY_COUNT * _RETRY_DELAY,
        )
        try:
            acquired = lock.acquire()
        except Exception as err:
            raise ProxyError(op, cause=err) from err
        if not acquired:
            raise ProxyError(op, "lock not obtained")
        try:
            result = self._stash_locked(mod, ver)
        except BaseException:
            with suppress(Exception):
                lock.release()
            raise
        try:
            lock.release()
        except Exception as err:
            raise ProxyError("redis.Unlock", cause=err) from err
        return result


def with_redis_lock(endpoint: str, checker: Checker) -> Wrapper:
    """Return a wrapper locking through the Redis server at *endpoint* ("host:port").

    Raises ProxyError if the server cannot be reached.
    """
    op = "stash.WithRedisLock"
    host, _, port = endpoint.rpartition(":")
    try:
        client = redis.Redis(host=host or "localhost", port=int(port) if port else 6379)
        client.ping()
    except (redis.RedisError, ValueError) as err:
        raise ProxyError(op, cause=err) from err
    return lambda stasher: RedisLockStasher(client, stasher, checker)