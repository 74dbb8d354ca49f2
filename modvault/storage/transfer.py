"""Parallel upload and removal of a module version's three blobs."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import BinaryIO

from modvault.errors import ProxyError

Uploader = Callable[[str, str, BinaryIO], None]
BlobDeleter = Callable[[str], None]

_EXTENSIONS = ("info", "mod", "zip")


class _MultiError(Exception):
    """Several failures collected from parallel work."""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = errors
        super().__init__(str(self))

    def __str__(self) -> str:
        noun = "error" if len(self.errors) == 1 else "errors"
        lines = "".join(f"\n\t* {err}" for err in self.errors)
        return f"{len(self.errors)} {noun} occurred:{lines}\n\n"


def versioned_name(module: str, version: str, ext: str) -> str:
    """Return the blob path of a module version's file with extension *ext*."""
    return f"{module}/@v/{version}.{ext}"


def _run_parallel(
    op: str,
    verb: str,
    module: str,
    version: str,
    tasks: dict[str, Callable[[], None]],
    timeout: float,
) -> None:
    executor = ThreadPoolExecutor(max_workers=len(tasks))
    try:
        futures = {ext: executor.submit(task) for ext, task in tasks.items()}
        done, _ = wait(futures.values(), timeout=timeout)
        errors: list[BaseException] = []
        for ext, future in futures.items():
            if future not in done:
                errors.append(
                    TimeoutError(
                        f"{verb} {module}.{version}.{ext} failed: context deadline exceeded"
                    )
                )
            elif future.exception() is not None:
                errors.append(future.exception())
    finally:
        executor.shutdown(wait=False)
    if errors:
        multi = _MultiError(errors)
        raise ProxyError(op, cause=multi) from multi


def upload(
    module: str,
    version: str,
    info: BinaryIO,
    mod: BinaryIO,
    zip: BinaryIO,
    uploader: Uploader,
    timeout: float,
) -> None:
    """Upload the .info, .mod and .zip files in parallel within *timeout* seconds."""
    content = {
        "info": ("application/json", info),
        "mod": ("text/plain", mod),
        "zip": ("application/octet-stream", zip),
    }

    def task(ext: str) -> Callable[[], None]:
        content_type, stream = content[ext]
        path = versioned_name(module, version, ext)
        return lambda: uploader(path, content_type, stream)

    _run_parallel(
        "module.Upload",
        "uploading",
        module,
        version,
        {ext: task(ext) for ext in _EXTENSIONS},
        timeout,
    )


def delete(module: str, version: str, deleter: BlobDeleter, timeout: float) -> None:
    """Delete the .info, .mod and .zip files in parallel within *timeout* seconds."""

    def task(ext: str) -> Callable[[], None]:
        path = versioned_name(module, version, ext)
        return lambda: deleter(path)

    _run_parallel(
        "module.Delete",
        "deleting",
        module,
        version,
        {ext: task(ext) for ext in _EXTENSIONS},
        timeout,
    )