"""Fetching modules from upstream and stashing them into storage."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from modvault.errors import Kind, ProxyError, is_kind
from modvault.storage.base import Backend, Version


class Stasher(ABC):
    """Takes a module from upstream and stores it.

    Returns the semantic version of what was stored, which may differ from
    the requested version when that was a branch name or a commit.
    """

    @abstractmethod
    def stash(self, mod: str, ver: str) -> str:
        """Stash *mod* at *ver* and return the resolved version."""


class Fetcher(ABC):
    """Retrieves a module version from upstream."""

    @abstractmethod
    def fetch(self, mod: str, ver: str) -> Version:
        """Return the module's files for *ver*."""


Wrapper = Callable[[Stasher], Stasher]


class StorageStasher(Stasher):
    """Fetches a module and saves it into a storage backend."""

    def __init__(self, fetcher: Fetcher, storage: Backend) -> None:
        self._fetcher = fetcher
        self._storage = storage

    def _fetch_module(self, mod: str, ver: str) -> Version:
        try:
            return self._fetcher.fetch(mod, ver)
        except Exception as err:
            raise ProxyError("stasher.fetchModule", cause=err) from err

    def stash(self, mod: str, ver: str) -> str:
        op = "stasher.Stash"
        try:
            version = self._fetch_module(mod, ver)
        except ProxyError as err:
            raise ProxyError(op, cause=err) from err
        try:
            if version.semver != ver and self._storage.exists(mod, version.semver):
                return version.semver
            self._storage.save(
                mod, version.semver, version.mod, version.zip, version.info
            )
        except Exception as err:
            raise ProxyError(op, cause=err) from err
        finally:
            version.zip.close()
        return version.semver


def new_stasher(fetcher: Fetcher, storage: Backend, *wrappers: Wrapper) -> Stasher:
    """Return a stasher saving into *storage*, wrapped by each of *wrappers* in order."""
    stasher: Stasher = StorageStasher(fetcher, storage)
    for wrap in wrappers:
        stasher = wrap(stasher)
    return stasher


class SingleflightStasher(Stasher):
    """Runs concurrent stashes of the same module version only once.

    Callers arriving while a stash is in flight all receive its outcome.
    """

    def __init__(self, stasher: Stasher) -> None:
        self._stasher = stasher
        self._lock = threading.Lock()
        self._subs: dict[tuple[str, str], list[Future[str]]] = {}

    def _process(self, mod: str, ver: str) -> None:
        error: BaseException | None = None
        result = ""
        try:
            result = self._stasher.stash(mod, ver)
        except Exception as err:
            error = err
        with self._lock:
            for waiter in self._subs.pop((mod, ver), []):
                if error is None:
                    waiter.set_result(result)
                else:
                    waiter.set_exception(error)

    def stash(self, mod: str, ver: str) -> str:
        key = (mod, ver)
        waiter: Future[str] = Future()
        with self._lock:
            subscribers = self._subs.get(key)
            if subscribers is None:
                self._subs[key] = [waiter]
                threading.Thread(
                    target=self._process, args=(mod, ver), daemon=True
                ).start()
            else:
                subscribers.append(waiter)
        return waiter.result()


def with_singleflight(stasher: Stasher) -> Stasher:
    """Wrap *stasher* so that concurrent identical requests share one stash."""
    return SingleflightStasher(stasher)


class PoolStasher(Stasher):
    """Runs at most *num_workers* stash operations at a time."""

    def __init__(self, stasher: Stasher, num_workers: int) -> None:
        self._stasher = stasher
        self._executor = ThreadPoolExecutor(max_workers=num_workers)

    def stash(self, mod: str, ver: str) -> str:
        future = self._executor.submit(self._stasher.stash, mod, ver)
        try:
            return future.result()
        except Exception as err:
            raise ProxyError("stash.Pool", cause=err) from err

    def close(self) -> None:
        """Stop the workers once pending stashes finish."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> PoolStasher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def with_pool(num_workers: int) -> Wrapper:
    """Return a wrapper limiting stashes to *num_workers* at a time."""
    return lambda stasher: PoolStasher(stasher, num_workers)


class GCSLockStasher(Stasher):
    """Treats an already-stored module as a successful stash."""

    def __init__(self, stasher: Stasher) -> None:
        self._stasher = stasher

    def stash(self, mod: str, ver: str) -> str:
        try:
            return self._stasher.stash(mod, ver)
        except Exception as err:
            if is_kind(err, Kind.ALREADY_EXISTS):
                return ver
            raise ProxyError("gcslock.Stash", cause=err) from err


def with_gcs_lock(stasher: Stasher) -> Stasher:
    """Wrap *stasher* for storage that rejects overwrites with ALREADY_EXISTS."""
    return GCSLockStasher(stasher)