import io
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from modvault.errors import Kind, ProxyError, is_kind
from modvault.stash import (
    Fetcher,
    GCSLockStasher,
    PoolStasher,
    Stasher,
    new_stasher,
    with_gcs_lock,
    with_pool,
    with_singleflight,
)
from modvault.storage.base import Version
from modvault.storage.mem import MemoryStorage


class RecordingStorage(MemoryStorage):
    def __init__(self, exists_response=False):
        super().__init__()
        self.exists_response = exists_response
        self.exists_called = False
        self.save_called = False
        self.given_version = None

    def exists(self, module, version):
        self.exists_called = True
        return self.exists_response

    def save(self, module, version, mod, zip, info):
        self.save_called = True
        self.given_version = version


class MockFetcher(Fetcher):
    def __init__(self, ver):
        self.ver = ver
        self.zip = None

    def fetch(self, mod, ver):
        self.zip = io.BytesIO(b"zipfile")
        return Version(mod=b"gomod", zip=self.zip, info=b"info", semver=self.ver)


class FailingFetcher(Fetcher):
    def fetch(self, mod, ver):
        raise ProxyError("upstream.Fetch", kind=Kind.NOT_FOUND)


@pytest.mark.parametrize(
    "ver, mod_ver, should_call_exists, exists_response, should_call_save",
    [
        ("master", "v1.2.3", True, False, True),
        ("master", "v1.2.3", True, True, False),
        ("v2.0.0", "v2.0.0", False, False, True),
    ],
    ids=["non semver", "no storage override", "equal semver"],
)
def test_stash(ver, mod_ver, should_call_exists, exists_response, should_call_save):
    storage = RecordingStorage(exists_response)
    fetcher = MockFetcher(mod_ver)
    stasher = new_stasher(fetcher, storage)
    assert stasher.stash("module", ver) == mod_ver
    assert storage.exists_called == should_call_exists
    if should_call_save:
        assert storage.given_version == mod_ver
    else:
        assert storage.save_called is False
    assert fetcher.zip.closed


def test_stash_into_real_storage():
    storage = MemoryStorage()
    stasher = new_stasher(MockFetcher("v1.0.0"), storage)
    assert stasher.stash("example.com/mod", "v1.0.0") == "v1.0.0"
    assert storage.go_mod("example.com/mod", "v1.0.0") == b"gomod"
    assert storage.info("example.com/mod", "v1.0.0") == b"info"


def test_fetch_error_is_wrapped_and_keeps_kind():
    stasher = new_stasher(FailingFetcher(), MemoryStorage())
    with pytest.raises(ProxyError) as info:
        stasher.stash("module", "v1.0.0")
    assert info.value.op == "stasher.Stash"
    assert is_kind(info.value, Kind.NOT_FOUND)


def test_wrappers_apply_in_order():
    stasher = new_stasher(
        MockFetcher("v1.0.0"), RecordingStorage(), with_singleflight, with_gcs_lock
    )
    assert isinstance(stasher, GCSLockStasher)
    assert stasher.stash("module", "v1.0.0") == "v1.0.0"


class SFStasher(Stasher):
    def __init__(self):
        self.lock = threading.Lock()
        self.num = 0

    def stash(self, mod, ver):
        time.sleep(0.1)
        with self.lock:
            if self.num == 0:
                self.num += 1
                return ""
            raise RuntimeError("second time error")


def test_singleflight():
    stasher = with_singleflight(SFStasher())
    with ThreadPoolExecutor(max_workers=5) as pool:
        futures = [pool.submit(stasher.stash, "mod", "ver") for _ in range(5)]
        assert [f.result() for f in futures] == [""] * 5

        futures = [pool.submit(stasher.stash, "mod", "ver") for _ in range(5)]
        errors = [f.exception() for f in futures]
    assert all(isinstance(err, RuntimeError) for err in errors)
    assert "second time error" in str(errors[0])


class PoolMock(Stasher):
    def __init__(self, input_mod, input_ver, err):
        self.input_mod = input_mod
        self.input_ver = input_ver
        self.err = err

    def stash(self, mod, ver):
        if mod != self.input_mod:
            raise RuntimeError(f"expected input mod {self.input_mod} but got {mod}")
        if ver != self.input_ver:
            raise RuntimeError(f"expected input ver {self.input_ver} but got {ver}")
        raise self.err


def test_pool_wrapper():
    mock = PoolMock("mod", "ver", RuntimeError("wrapped err"))
    stasher = with_pool(2)(mock)
    try:
        with pytest.raises(ProxyError) as info:
            stasher.stash("mod", "ver")
    finally:
        stasher.close()
    assert info.value.cause is mock.err
    assert str(info.value).endswith("wrapped err")


class CountingStasher(Stasher):
    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def stash(self, mod, ver):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.05)
        with self.lock:
            self.active -= 1
        return ver + "-stashed"


def test_pool_limits_concurrency():
    inner = CountingStasher()
    with PoolStasher(inner, 2) as stasher:
        with ThreadPoolExecutor(max_workers=6) as callers:
            futures = [callers.submit(stasher.stash, "mod", f"v{i}") for i in range(6)]
            results = [f.result() for f in futures]
    assert results == [f"v{i}-stashed" for i in range(6)]
    assert 1 <= inner.max_active <= 2


class RaisingStasher(Stasher):
    def __init__(self, err):
        self.err = err

    def stash(self, mod, ver):
        raise self.err


def test_gcs_lock_already_exists_returns_requested_version():
    stasher = with_gcs_lock(
        RaisingStasher(ProxyError("gcp.upload", kind=Kind.ALREADY_EXISTS))
    )
    assert stasher.stash("stashmod", "v1.0.0") == "v1.0.0"


def test_gcs_lock_other_errors_are_raised():
    err = ProxyError("gcp.upload", kind=Kind.BAD_REQUEST)
    stasher = with_gcs_lock(RaisingStasher(err))
    with pytest.raises(ProxyError) as info:
        stasher.stash("stashmod", "v1.0.0")
    assert info.value.op == "gcslock.Stash"
    assert info.value.cause is err
    assert is_kind(info.value, Kind.BAD_REQUEST)


def test_gcs_lock_passes_through_result():
    stasher = with_gcs_lock(CountingStasher())
    assert stasher.stash("stashmod", "v1.0.0") == "v1.0.0-stashed"