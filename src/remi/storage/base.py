"""Base storage service interface.

Defines the value objects every backend exchanges with its callers and the
abstract ``StorageService`` contract with its two-state lifecycle.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from remi.errors import InvalidArgumentError, UninitializedError
from remi.observability.logging import LogContext
from remi.storage.content_type import (
    DEFAULT_CONTENT_TYPE,
    UNKNOWN_CONTENT_TYPE,
    ContentTypeResolver,
    MagicContentTypeResolver,
    resolve_stream,
)

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass
class Blob:
    """Metadata for a stored object, optionally carrying its content."""

    name: str
    path: str
    size: int = 0
    content_type: str = UNKNOWN_CONTENT_TYPE
    etag: str | None = None
    created_at: datetime | None = None
    last_modified_at: datetime | None = None
    content: BinaryIO | None = field(default=None, repr=False, compare=False)

    def read(self) -> bytes:
        """Read the remaining content bytes."""
        if self.content is None:
            raise InvalidArgumentError(self.path, "blob was fetched without content")
        return self.content.read()

    def close(self) -> None:
        """Close the content stream, if any."""
        if self.content is not None:
            self.content.close()

    def __enter__(self) -> "Blob":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


@dataclass(frozen=True)
class ListBlobsRequest:
    """Filter applied when listing blobs.

    Attributes:
        prefix: Key prefix narrowing the enumeration (server-side where the
            backend supports it)
        extensions: Allowed file extensions, with or without a leading dot;
            empty means no restriction
        exclude: Keys, base names or glob patterns to skip
        include_content: Fetch each blob's body; expensive on remote backends
    """

    prefix: str | None = None
    extensions: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()
    include_content: bool = False

    @classmethod
    def build(
        cls,
        prefix: str | None = None,
        extensions: Iterable[str] = (),
        exclude: Iterable[str] = (),
        include_content: bool = False,
    ) -> "ListBlobsRequest":
        """Build a request from any iterables of extensions and exclusions."""
        return cls(
            prefix=prefix or None,
            extensions=frozenset(ext.lstrip(".") for ext in extensions if ext),
            exclude=frozenset(exclude),
            include_content=include_content,
        )


class UploadRequest:
    """A pending upload whose content stream can be consumed exactly once."""

    def __init__(
        self,
        path: str,
        content: BinaryIO,
        content_type: str | None = DEFAULT_CONTENT_TYPE,
    ) -> None:
        if not path:
            raise InvalidArgumentError(str(path), "upload path is required")
        if content is None:
            raise InvalidArgumentError(path, "upload content is required")
        if getattr(content, "closed", False):
            raise InvalidArgumentError(path, "upload content stream is already closed")

        self.path = path
        self.content_type = content_type or DEFAULT_CONTENT_TYPE
        self._content = content
        self._consumed = False

    @classmethod
    def from_bytes(
        cls,
        path: str,
        data: bytes,
        content_type: str | None = DEFAULT_CONTENT_TYPE,
    ) -> "UploadRequest":
        return cls(path, io.BytesIO(data), content_type)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def open(self) -> BinaryIO:
        """Hand over the content stream, marking the request as consumed."""
        if self._consumed:
            raise InvalidArgumentError(self.path, "upload content stream was already consumed")
        self._consumed = True
        return self._content

    def __repr__(self) -> str:
        return (
            f"UploadRequest(path={self.path!r}, content_type={self.content_type!r}, "
            f"consumed={self._consumed})"
        )


class StorageService(ABC, Generic[ConfigT]):
    """Abstract base class for storage backends.

    A service starts out uninitialized. ``init()`` moves it to the ready
    state; every other operation except ``name``, ``config`` and the
    content-type helpers raises ``UninitializedError`` before that.
    Subclasses implement the underscored hooks and never check the
    lifecycle themselves.
    """

    scheme: ClassVar[str]

    def __init__(
        self,
        config: ConfigT,
        content_type_resolver: ContentTypeResolver | None = None,
    ) -> None:
        self._config = config
        self.content_type_resolver: ContentTypeResolver = (
            content_type_resolver or MagicContentTypeResolver()
        )
        self._ready = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this storage service, e.g. ``remi:s3``."""
        ...

    @property
    def config(self) -> ConfigT:
        return self._config

    @property
    def initialized(self) -> bool:
        return self._ready

    def init(self) -> None:
        """Prepare the backend: create the root container and cache the client.

        Calling this on an initialized service logs a warning and does nothing.
        """
        if self._ready:
            logger.warning(f"Storage service {self.name} was already initialized, skipping")
            return

        with self._operation("init"):
            self._init()
        self._ready = True
        logger.debug(f"Storage service {self.name} is ready")

    def close(self) -> None:
        """Release the client handle and return to the uninitialized state."""
        if not self._ready:
            return
        self._close()
        self._ready = False

    def __enter__(self) -> "StorageService[ConfigT]":
        self.init()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def blob(self, path: str) -> Blob | None:
        """Fetch one object's metadata and content.

        Returns:
            The blob, or None if nothing is stored under ``path``

        Raises:
            InvalidArgumentError: If ``path`` denotes a directory
            StorageError: If the backend could not be reached
        """
        self._require_ready()
        with self._operation("blob"):
            return self._blob(path)

    def blobs(self, request: ListBlobsRequest | None = None) -> list[Blob]:
        """List blobs matching ``request``; None lists everything."""
        self._require_ready()
        with self._operation("blobs"):
            return self._blobs(request or ListBlobsRequest())

    def upload(self, request: UploadRequest) -> None:
        """Write the request's stream under its path, consuming the stream."""
        self._require_ready()
        with self._operation("upload"):
            self._upload(request)

    def exists(self, path: str) -> bool:
        """Check whether an object is stored under ``path``."""
        self._require_ready()
        with self._operation("exists"):
            return self._exists(path)

    def delete(self, path: str) -> bool:
        """Delete ``path``.

        Returns:
            True if something was deleted, False if nothing was found
        """
        self._require_ready()
        with self._operation("delete"):
            return self._delete(path)

    def open(self, path: str) -> BinaryIO | None:
        """Open a readable stream over an object's content.

        The caller owns the returned stream and must close it.
        """
        self._require_ready()
        with self._operation("open"):
            return self._open(path)

    def get_content_type_of(self, data: bytes | BinaryIO) -> str:
        """Detect the content type of raw bytes or a stream."""
        if isinstance(data, (bytes, bytearray, memoryview)):
            return self.content_type_resolver.resolve(bytes(data))
        return resolve_stream(self.content_type_resolver, data)

    def _require_ready(self) -> None:
        if not self._ready:
            raise UninitializedError(self.name)

    def _blob_path(self, key: str) -> str:
        return f"{self.scheme}://{key}"

    def _operation(self, operation: str) -> LogContext:
        return LogContext(storage_backend=self.name, operation=operation)

    @abstractmethod
    def _init(self) -> None: ...

    def _close(self) -> None:
        pass

    @abstractmethod
    def _blob(self, path: str) -> Blob | None: ...

    @abstractmethod
    def _blobs(self, request: ListBlobsRequest) -> list[Blob]: ...

    @abstractmethod
    def _upload(self, request: UploadRequest) -> None: ...

    @abstractmethod
    def _exists(self, path: str) -> bool: ...

    @abstractmethod
    def _delete(self, path: str) -> bool: ...

    @abstractmethod
    def _open(self, path: str) -> BinaryIO | None: ...
