"""Storage interfaces and the records they exchange."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, BinaryIO

from modvault.paths import AllPathParams


@dataclass
class Version:
    """A module version: its go.mod, .info and source zip."""

    mod: bytes
    zip: BinaryIO
    info: bytes
    semver: str = ""


@dataclass
class Module:
    """A module version as kept in a document store."""

    module: str = ""
    version: str = ""
    mod: bytes = b""
    zip: bytes = b""
    info: bytes = b""
    id: Any = field(default=None)


_TIME_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})"
)


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    seconds = int(offset.total_seconds())
    sign = "+" if seconds >= 0 else "-"
    seconds = abs(seconds)
    return f"{text}{sign}{seconds // 3600:02d}:{seconds % 3600 // 60:02d}"


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time {text!r}")
    stamp, fraction, zone = match.groups()
    if fraction:
        stamp += "." + fraction[:6].ljust(6, "0")
    stamp += "+00:00" if zone == "Z" else zone
    return datetime.fromisoformat(stamp)


@dataclass
class RevInfo:
    """The body of a version's .info file."""

    version: str
    time: datetime

    def to_json(self) -> str:
        return json.dumps({"Version": self.version, "Time": _format_time(self.time)})

    @classmethod
    def from_json(cls, data: str | bytes) -> RevInfo:
        try:
            raw = json.loads(data)
            return cls(version=raw["Version"], time=_parse_time(raw["Time"]))
        except (KeyError, TypeError) as err:
            raise ValueError(f"invalid revision info: {err}") from err


class Lister(ABC):
    @abstractmethod
    def list(self, module: str) -> list[str]:
        """Return every stored version of *module*."""


class Getter(ABC):
    @abstractmethod
    def info(self, module: str, version: str) -> bytes:
        """Return the .info contents."""

    @abstractmethod
    def go_mod(self, module: str, version: str) -> bytes:
        """Return the go.mod contents."""

    @abstractmethod
    def zip(self, module: str, version: str) -> BinaryIO:
        """Return a readable stream of the source zip."""


class Checker(ABC):
    @abstractmethod
    def exists(self, module: str, version: str) -> bool:
        """Report whether the module version is fully stored."""


class Saver(ABC):
    @abstractmethod
    def save(
        self, module: str, version: str, mod: bytes, zip: BinaryIO, info: bytes
    ) -> None:
        """Store a module version."""


class Deleter(ABC):
    @abstractmethod
    def delete(self, module: str, version: str) -> None:
        """Remove a module version; raise a NOT_FOUND error if absent."""


class Cataloger(ABC):
    @abstractmethod
    def catalog(self, token: str, page_size: int) -> tuple[list[AllPathParams], str]:
        """Return one page of stored module versions and the next page token."""


class Backend(Lister, Getter, Checker, Saver, Deleter, ABC):
    """A complete storage backend."""


class Reader:
    """Read-only view combining a lister, a getter and a checker."""

    def __init__(self, lister: Lister, getter: Getter, checker: Checker) -> None:
        self.lister = lister
        self.getter = getter
        self.checker = checker

    def list(self, module: str) -> list[str]:
        return self.lister.list(module)

    def info(self, module: str, version: str) -> bytes:
        return self.getter.info(module, version)

    def go_mod(self, module: str, version: str) -> bytes:
        return self.getter.go_mod(module, version)

    def zip(self, module: str, version: str) -> BinaryIO:
        return self.getter.zip(module, version)

    def exists(self, module: str, version: str) -> bool:
        return self.checker.exists(module, version)