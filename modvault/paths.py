"""Module path decoding and request path parameters."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

from modvault.errors import ProxyError


@dataclass
class AllPathParams:
    """The module and version named in a request path."""

    module: str
    version: str


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def decode_path(encoding: str) -> str:
    """Return the module path for a safe encoding ("!x" stands for "X")."""
    op = "paths.DecodePath"
    chars: list[str] = []
    bang = False
    for ch in encoding:
        if ord(ch) >= 0x80:
            break
        if bang:
            bang = False
            if not "a" <= ch <= "z":
                break
            chars.append(ch.upper())
            continue
        if ch == "!":
            bang = True
            continue
        if "A" <= ch <= "Z":
            break
        chars.append(ch)
    else:
        if not bang:
            return "".join(chars)
    raise ProxyError(op, f"invalid module path encoding {_quote(encoding)}")


def get_module(params: Mapping[str, str]) -> str:
    """Return the decoded module from route parameters."""
    module = params.get("module", "")
    if not module:
        raise ProxyError("paths.GetModule", "missing module parameter")
    return decode_path(module)


def get_version(params: Mapping[str, str]) -> str:
    """Return the decoded version from route parameters."""
    version = params.get("version", "")
    if not version:
        raise ProxyError("paths.GetVersion", "missing version parameter")
    return decode_path(version)


def get_all_params(params: Mapping[str, str]) -> AllPathParams:
    """Return both the module and the version from route parameters."""
    op = "paths.GetAllParams"
    try:
        module = get_module(params)
        version = get_version(params)
    except ProxyError as err:
        raise ProxyError(op, cause=err) from err
    return AllPathParams(module=module, version=version)


class _BadPattern(ValueError):
    pass


def _class_char(pattern: str, pos: int) -> tuple[str, int]:
    """Read one character of a bracket class, honouring backslash escapes."""
    if pos >= len(pattern) or pattern[pos] in "-]":
        raise _BadPattern(pattern)
    if pattern[pos] == "\\":
        pos += 1
        if pos >= len(pattern):
            raise _BadPattern(pattern)
    ch = pattern[pos]
    pos += 1
    if pos >= len(pattern):
        raise _BadPattern(pattern)
    return ch, pos


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    pos = 0
    while pos < len(pattern):
        ch = pattern[pos]
        if ch == "*":
            parts.append("[^/]*")
            pos += 1
        elif ch == "?":
            parts.append("[^/]")
            pos += 1
        elif ch == "\\":
            if pos + 1 >= len(pattern):
                raise _BadPattern(pattern)
            parts.append(re.escape(pattern[pos + 1]))
            pos += 2
        elif ch == "[":
            pos += 1
            negated = pos < len(pattern) and pattern[pos] == "^"
            if negated:
                pos += 1
            ranges: list[str] = []
            while True:
                if pos < len(pattern) and pattern[pos] == "]" and ranges:
                    pos += 1
                    break
                lo, pos = _class_char(pattern, pos)
                hi = lo
                if pattern[pos] == "-":
                    hi, pos = _class_char(pattern, pos + 1)
                    if hi < lo:
                        raise _BadPattern(pattern)
                ranges.append(re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}")
            parts.append("[" + ("^" if negated else "") + "".join(ranges) + "]")
        else:
            parts.append(re.escape(ch))
            pos += 1
    return re.compile("".join(parts), re.DOTALL)


def matches_pattern(pattern: str, target: str) -> bool:
    """Report whether the path prefix of *target* matches the glob *pattern*.

    The prefix has as many path elements as the pattern; a malformed
    pattern never matches.
    """
    depth = pattern.count("/")
    elements = target.split("/")
    if len(elements) - 1 < depth:
        return False
    prefix = "/".join(elements[: depth + 1])
    try:
        compiled = _compile_pattern(pattern)
    except _BadPattern:
        return False
    return compiled.fullmatch(prefix) is not None