"""Storage backend that keeps module versions in a directory tree."""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterator
from typing import BinaryIO

from modvault.errors import Kind, ProxyError
from modvault.paths import AllPathParams
from modvault.storage.base import Backend, Cataloger

_TOKEN_SEPARATOR = "|"

_NUM = r"(?:0|[1-9][0-9]*)"
_IDENT = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"
_BUILD_IDENT = r"[0-9A-Za-z-]+"
_SEMVER_RE = re.compile(
    rf"v(?P<major>{_NUM})"
    rf"(?:\.(?P<minor>{_NUM})"
    rf"(?:\.(?P<patch>{_NUM})"
    rf"(?P<pre>-{_IDENT}(?:\.{_IDENT})*)?"
    rf"(?P<build>\+{_BUILD_IDENT}(?:\.{_BUILD_IDENT})*)?"
    r")?)?"
)


def canonical_semver(version: str) -> str:
    """Return the canonical form of a semantic version, or "" if it is invalid.

    Short forms are padded ("v1" becomes "v1.0.0") and build metadata is dropped.
    """
    match = _SEMVER_RE.fullmatch(version)
    if match is None:
        return ""
    if match.group("minor") is None:
        return version + ".0.0"
    if match.group("patch") is None:
        return version + ".0"
    build = match.group("build")
    if build:
        return version[: -len(build)]
    return version


def _token_from_mod_ver(module: str, version: str) -> str:
    return module + _TOKEN_SEPARATOR + version


def _mod_ver_from_token(token: str) -> tuple[str, str]:
    if not token:
        return "", ""
    values = token.split(_TOKEN_SEPARATOR)
    if len(values) < 2:
        raise ProxyError("fs.Catalog", "Invalid token")
    return values[0], values[1]


def _join(*parts: str) -> str:
    return os.path.normpath(os.sep.join(part for part in parts if part))


def _walk(path: str) -> Iterator[tuple[str, str]]:
    """Yield (path, name) for every entry below *path* in lexical depth-first order."""
    for name in sorted(os.listdir(path)):
        full = os.path.join(path, name)
        yield full, name
        if os.path.isdir(full) and not os.path.islink(full):
            yield from _walk(full)


class FilesystemStorage(Backend, Cataloger):
    """A backend storing each version under <root>/<module>/<version>/."""

    def __init__(self, root_dir: str | os.PathLike[str]) -> None:
        op = "fs.NewStorage"
        root = os.fspath(root_dir)
        try:
            exists = os.path.exists(root)
        except (OSError, ValueError) as err:
            raise ProxyError(
                op, f"could not check if root directory `{root}` exists: {err}", cause=err
            ) from err
        if not exists:
            raise ProxyError(op, f"root directory `{root}` does not exist")
        self.root_dir = root

    def _module_location(self, module: str) -> str:
        return _join(self.root_dir, module)

    def _version_location(self, module: str, version: str) -> str:
        return _join(self.root_dir, module, version)

    def list(self, module: str) -> list[str]:
        op = "fs.List"
        location = self._module_location(module)
        try:
            names = sorted(os.listdir(location))
        except FileNotFoundError:
            return []
        except OSError as err:
            raise ProxyError(op, kind=Kind.UNEXPECTED, module=module, cause=err) from err
        versions = []
        for name in names:
            if not os.path.isdir(os.path.join(location, name)):
                continue
            canonical = canonical_semver(name)
            if canonical and name.startswith(canonical):
                versions.append(name)
        return versions

    def _read(self, op: str, module: str, version: str, filename: str) -> bytes:
        path = os.path.join(self._version_location(module, version), filename)
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError as err:
            raise ProxyError(
                op, kind=Kind.NOT_FOUND, module=module, version=version, cause=err
            ) from err

    def info(self, module: str, version: str) -> bytes:
        return self._read("fs.Info", module, version, version + ".info")

    def go_mod(self, module: str, version: str) -> bytes:
        return self._read("fs.GoMod", module, version, "go.mod")

    def zip(self, module: str, version: str) -> BinaryIO:
        path = os.path.join(self._version_location(module, version), "source.zip")
        try:
            return open(path, "rb")
        except OSError as err:
            raise ProxyError(
                "fs.Zip", kind=Kind.NOT_FOUND, module=module, version=version, cause=err
            ) from err

    def exists(self, module: str, version: str) -> bool:
        try:
            entries = os.listdir(self._version_location(module, version))
        except FileNotFoundError:
            return False
        except OSError as err:
            raise ProxyError(
                "fs.Exists", module=module, version=version, cause=err
            ) from err
        return len(entries) == 3

    def save(
        self, module: str, version: str, mod: bytes, zip: BinaryIO, info: bytes
    ) -> None:
        op = "fs.Save"
        directory = self._version_location(module, version)
        try:
            os.makedirs(directory, mode=0o777, exist_ok=True)
            with open(os.path.join(directory, "go.mod"), "wb") as handle:
                handle.write(mod)
            with open(os.path.join(directory, "source.zip"), "wb") as handle:
                shutil.copyfileobj(zip, handle)
        except OSError as err:
            raise ProxyError(op, module=module, version=version, cause=err) from err
        try:
            with open(os.path.join(directory, version + ".info"), "wb") as handle:
                handle.write(info)
        except OSError as err:
            raise ProxyError(op, cause=err) from err

    def delete(self, module: str, version: str) -> None:
        op = "fs.Delete"
        try:
            exists = self.exists(module, version)
        except ProxyError as err:
            raise ProxyError(op, module=module, version=version, cause=err) from err
        if not exists:
            raise ProxyError(op, kind=Kind.NOT_FOUND, module=module, version=version)
        shutil.rmtree(self._version_location(module, version))

    def catalog(self, token: str, page_size: int) -> tuple[list[AllPathParams], str]:
        op = "fs.Catalog"
        try:
            from_module, from_version = _mod_ver_from_token(token)
        except ProxyError as err:
            raise ProxyError(op, kind=Kind.BAD_REQUEST, cause=err) from err

        result: list[AllPathParams] = []
        count = page_size
        try:
            for path, name in _walk(self.root_dir):
                if not name.endswith(".info"):
                    continue
                mod_ver = os.path.relpath(os.path.dirname(path), self.root_dir)
                head, version = os.path.split(mod_ver)
                module = os.path.normpath(head) if head else "."
                module = module.replace(os.sep, "/")
                if from_module and module < from_module:
                    continue
                if from_version and version <= from_version:
                    continue
                result.append(AllPathParams(module=module, version=version))
                count -= 1
                if count == 0:
                    return result, _token_from_mod_ver(module, version)
        except (OSError, ValueError) as err:
            raise ProxyError(op, kind=Kind.UNEXPECTED, cause=err) from err
        return result, ""