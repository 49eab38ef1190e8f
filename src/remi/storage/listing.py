"""Listing engine shared by the storage backends.

Backends enumerate natively in one of two shapes:

- Directory trees (filesystem), walked recursively by ``walk_files``
- Continuation-token pages (S3, Azure, GCS), drained by ``paginate``

Both feed keys through ``BlobFilter`` so that extension and exclusion
filtering behaves identically everywhere.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import posixpath
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from remi.errors import StorageError

if TYPE_CHECKING:
    from remi.storage.base import ListBlobsRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (continuation token) -> (entries of one page, next continuation token)
PageFetcher = Callable[[str | None], tuple[Sequence[T], str | None]]


def extension_of(name: str) -> str:
    """Return the extension of a base name without its dot, or ``""``."""
    base = posixpath.basename(name)
    return base.rsplit(".", 1)[1] if "." in base else ""


def is_directory_marker(key: str) -> bool:
    """Object-store keys ending in a separator are folders, not blobs."""
    return key.endswith("/")


@dataclass(frozen=True)
class BlobFilter:
    """Client-side extension and exclusion filter."""

    extensions: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()

    @classmethod
    def from_request(cls, request: ListBlobsRequest | None) -> "BlobFilter":
        if request is None:
            return cls()
        return cls(
            extensions=frozenset(ext.lstrip(".") for ext in request.extensions),
            exclude=request.exclude,
        )

    def is_excluded(self, key: str) -> bool:
        """Check ``key`` against exact keys, base names and glob patterns."""
        name = posixpath.basename(key)
        for pattern in self.exclude:
            if pattern in (key, name):
                return True
            if fnmatch.fnmatchcase(key, pattern) or fnmatch.fnmatchcase(name, pattern):
                return True
        return False

    def allows(self, key: str) -> bool:
        if self.exclude and self.is_excluded(key):
            logger.debug(f"Excluding [{key}]: matched an exclusion")
            return False

        if self.extensions and extension_of(key) not in self.extensions:
            logger.debug(f"Excluding [{key}]: extension not in {sorted(self.extensions)}")
            return False

        return True


def paginate(fetch_page: PageFetcher[T]) -> Iterator[list[T]]:
    """Drain a continuation-token listing, yielding one page at a time.

    Stops when the backend returns no next token. A backend that hands back
    the token it was just given would loop forever, so that also stops the
    listing (with a warning).
    """
    token: str | None = None
    pages = 0
    while True:
        entries, next_token = fetch_page(token)
        pages += 1
        yield list(entries)

        if not next_token:
            break
        if next_token == token:
            logger.warning(
                f"Listing returned the same continuation token twice, stopping after {pages} pages"
            )
            break
        token = next_token


@dataclass
class WalkStats:
    """Counters kept while walking a directory tree."""

    visited: int = 0
    failed: int = 0

    @property
    def succeeded_percent(self) -> float:
        if self.visited == 0:
            return 100.0
        return (self.visited - self.failed) / self.visited * 100


def walk_files(directory: str, stats: WalkStats) -> Iterator[str]:
    """Recursively yield the absolute paths of regular files under ``directory``.

    Symbolic links are skipped: linked directories are not descended into
    and linked files are not yielded.
    Unreadable sub-directories are logged and counted as failures; an
    unreadable or missing ``directory`` raises ``StorageError``.
    """
    if not os.path.isdir(directory):
        raise StorageError("Cannot walk a missing directory", path=directory)

    def on_error(exc: OSError) -> None:
        failed_path = os.path.abspath(exc.filename) if exc.filename is not None else None
        if failed_path == os.path.abspath(directory):
            raise StorageError("Failed to enumerate directory", path=directory) from exc
        logger.warning(f"Failed to visit [{exc.filename}]: {exc}")
        stats.visited += 1
        stats.failed += 1

    for dirpath, _dirnames, filenames in os.walk(directory, onerror=on_error, followlinks=False):
        for filename in filenames:
            path = os.path.join(dirpath, filename)
            if os.path.islink(path) or not os.path.isfile(path):
                logger.debug(f"Skipping [{path}]: not a regular file")
                continue
            yield path
