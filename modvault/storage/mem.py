"""In-memory storage backend."""

from __future__ import annotations

import io
import posixpath
import shutil
import threading
from typing import BinaryIO

from modvault.errors import Kind, ProxyError
from modvault.paths import AllPathParams
from modvault.storage.base import Backend, Cataloger
from modvault.storage.fs import (
    _mod_ver_from_token,
    _token_from_mod_ver,
    canonical_semver,
)

_Key = tuple[str, ...]


def _key(module: str, version: str) -> _Key:
    path = posixpath.normpath("/".join(part for part in (module, version) if part))
    return tuple(part for part in path.split("/") if part)


def _module_parts(module: str) -> _Key:
    path = posixpath.normpath(module) if module else "."
    return tuple(part for part in path.split("/") if part and part != ".")


class MemoryStorage(Backend, Cataloger):
    """A backend holding every module version in process memory.

    Versions are laid out like the filesystem backend: by path components of
    the module followed by the version.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[_Key, dict[str, bytes]] = {}

    def list(self, module: str) -> list[str]:
        parent = _module_parts(module)
        with self._lock:
            names = sorted(
                key[-1]
                for key in self._entries
                if key and key[:-1] == parent
            )
        result = []
        for name in names:
            canonical = canonical_semver(name)
            if canonical and name.startswith(canonical):
                result.append(name)
        return result

    def _read(self, op: str, module: str, version: str, part: str) -> bytes:
        with self._lock:
            files = self._entries.get(_key(module, version), {})
            data = files.get(part)
        if data is None:
            raise ProxyError(op, kind=Kind.NOT_FOUND, module=module, version=version)
        return data

    def info(self, module: str, version: str) -> bytes:
        return self._read("mem.Info", module, version, "info")

    def go_mod(self, module: str, version: str) -> bytes:
        return self._read("mem.GoMod", module, version, "mod")

    def zip(self, module: str, version: str) -> BinaryIO:
        return io.BytesIO(self._read("mem.Zip", module, version, "zip"))

    def exists(self, module: str, version: str) -> bool:
        with self._lock:
            return len(self._entries.get(_key(module, version), {})) == 3

    def save(
        self, module: str, version: str, mod: bytes, zip: BinaryIO, info: bytes
    ) -> None:
        buffer = io.BytesIO()
        try:
            shutil.copyfileobj(zip, buffer)
        except OSError as err:
            raise ProxyError(
                "mem.Save", module=module, version=version, cause=err
            ) from err
        with self._lock:
            self._entries[_key(module, version)] = {
                "mod": bytes(mod),
                "zip": buffer.getvalue(),
                "info": bytes(info),
            }

    def delete(self, module: str, version: str) -> None:
        key = _key(module, version)
        with self._lock:
            if len(self._entries.get(key, {})) != 3:
                raise ProxyError(
                    "mem.Delete", kind=Kind.NOT_FOUND, module=module, version=version
                )
            del self._entries[key]

    def catalog(self, token: str, page_size: int) -> tuple[list[AllPathParams], str]:
        op = "mem.Catalog"
        try:
            from_module, from_version = _mod_ver_from_token(token)
        except ProxyError as err:
            raise ProxyError(op, kind=Kind.BAD_REQUEST, cause=err) from err
        with self._lock:
            keys = sorted(key for key, files in self._entries.items() if key and "info" in files)
        result: list[AllPathParams] = []
        count = page_size
        for key in keys:
            module = "/".join(key[:-1]) or "."
            version = key[-1]
            if from_module and module < from_module:
                continue
            if from_version and version <= from_version:
                continue
            result.append(AllPathParams(module=module, version=version))
            count -= 1
            if count == 0:
                return result, _token_from_mod_ver(module, version)
        return result, ""


_shared_lock = threading.Lock()
_shared: MemoryStorage | None = None


def new_storage() -> MemoryStorage:
    """Return the process-wide in-memory storage, creating it on first use."""
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = MemoryStorage()
        return _shared