"""Adapters from chunk iterators to readable binary streams."""

from __future__ import annotations

import io
from collections.abc import Iterable
from typing import Any, BinaryIO, cast


class ChunkedReader(io.RawIOBase):
    """Raw stream reading from an iterator of byte chunks."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = iter(chunks)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


def chunked_stream(chunks: Iterable[bytes]) -> BinaryIO:
    """Wrap ``chunks`` in a buffered, file-like reader."""
    return cast(BinaryIO, io.BufferedReader(ChunkedReader(chunks)))
