"""Error type shared by the proxy's storage and stashing layers."""

from __future__ import annotations

import enum


class Kind(enum.IntEnum):
    """Category of a failure, aligned with the HTTP status it maps to."""

    NOT_SET = 0
    BAD_REQUEST = 400
    NOT_FOUND = 404
    ALREADY_EXISTS = 409
    UNEXPECTED = 500


class ProxyError(Exception):
    """An error raised by an operation, optionally wrapping an underlying cause."""

    def __init__(
        self,
        op: str = "",
        message: str = "",
        kind: Kind = Kind.NOT_SET,
        module: str = "",
        version: str = "",
        cause: BaseException | None = None,
    ) -> None:
        self.op = op
        self.message = message
        self.kind = Kind(kind)
        self.module = module
        self.version = version
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        text = self.message or (str(self.cause) if self.cause is not None else "")
        if self.op and text:
            return f"{self.op}: {text}"
        return self.op or text


def kind_of(err: BaseException) -> Kind:
    """Return the kind of *err*, looking through wrapped causes when unset."""
    if not isinstance(err, ProxyError):
        return Kind.UNEXPECTED
    if err.kind is not Kind.NOT_SET:
        return err.kind
    if err.cause is None:
        return Kind.UNEXPECTED
    return kind_of(err.cause)


def is_kind(err: BaseException, kind: Kind) -> bool:
    """Report whether *err* is of the given kind."""
    return kind_of(err) == kind