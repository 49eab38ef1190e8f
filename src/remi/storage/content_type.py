"""Content-type detection from magic bytes."""

from __future__ import annotations

import logging
from typing import BinaryIO, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

UNKNOWN_CONTENT_TYPE = "unknown"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# libmagic only inspects the head of a file
SNIFF_SIZE = 8 * 1024


@runtime_checkable
class ContentTypeResolver(Protocol):
    """Detects a MIME type from content bytes.

    Implementations must be free of side effects, accept empty input and
    return ``UNKNOWN_CONTENT_TYPE`` instead of raising when detection is
    inconclusive.
    """

    def resolve(self, data: bytes) -> str: ...


class MagicContentTypeResolver:
    """ContentTypeResolver backed by libmagic through python-magic.

    Without python-magic or libmagic every lookup is inconclusive; the
    missing library is reported once per resolver.
    """

    def __init__(self) -> None:
        self._warned_unavailable = False

    def resolve(self, data: bytes) -> str:
        if not data:
            return UNKNOWN_CONTENT_TYPE

        try:
            import magic
        except ImportError as exc:
            if not self._warned_unavailable:
                logger.warning(f"libmagic is unavailable, content types will be unknown: {exc}")
                self._warned_unavailable = True
            return UNKNOWN_CONTENT_TYPE

        try:
            mime = magic.from_buffer(data[:SNIFF_SIZE], mime=True)
        except magic.MagicException as exc:
            logger.debug(f"libmagic could not classify {len(data)} bytes: {exc}")
            return UNKNOWN_CONTENT_TYPE

        return mime or UNKNOWN_CONTENT_TYPE


def resolve_stream(resolver: ContentTypeResolver, stream: BinaryIO) -> str:
    """Resolve the content type of a stream by peeking at its head.

    The stream position is restored when the stream is seekable.
    """
    seekable = stream.seekable()
    position = stream.tell() if seekable else 0
    head = stream.read(SNIFF_SIZE)
    if seekable:
        stream.seek(position)
    return resolver.resolve(head or b"")
