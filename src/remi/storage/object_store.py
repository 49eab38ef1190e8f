"""Shared listing and deletion logic for bucket-style object stores.

S3, Azure Blob Storage and Google Cloud Storage all enumerate with a paged
listing call and a continuation token. The backends translate their native
entries and errors; this class owns the traversal.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from remi.errors import InvalidArgumentError, StorageError
from remi.storage.base import Blob, ListBlobsRequest, StorageService
from remi.storage.content_type import UNKNOWN_CONTENT_TYPE
from remi.storage.listing import BlobFilter, is_directory_marker, paginate

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)
EntryT = TypeVar("EntryT")


class ObjectStorageService(StorageService[ConfigT], Generic[ConfigT, EntryT]):
    """Base class for object stores listed through continuation tokens."""

    def _blob(self, path: str) -> Blob | None:
        if is_directory_marker(path):
            raise InvalidArgumentError(path, "path is a directory marker")
        return self._get_blob(path)

    def _blobs(self, request: ListBlobsRequest) -> list[Blob]:
        blob_filter = BlobFilter.from_request(request)
        blobs: list[Blob] = []
        skipped = 0

        for page in paginate(lambda token: self._list_page(request.prefix, token)):
            for entry in page:
                key = self._entry_key(entry)
                if is_directory_marker(key) or not blob_filter.allows(key):
                    continue

                data: bytes | None = None
                if request.include_content:
                    try:
                        data = self._download(key)
                    except StorageError as exc:
                        logger.warning(f"Failed to fetch content of [{key}], skipping: {exc}")
                        skipped += 1
                        continue
                    if data is None:
                        logger.debug(f"Object [{key}] disappeared while listing, skipping")
                        continue

                blobs.append(self._entry_to_blob(entry, data))

        logger.debug(
            f"Listed {len(blobs)} blobs from {self.name} "
            f"(prefix={request.prefix!r}, skipped={skipped})"
        )
        return blobs

    def _delete(self, path: str) -> bool:
        if not is_directory_marker(path):
            return self._delete_key(path)

        # Collect first so deletions cannot disturb the continuation tokens
        keys = [
            self._entry_key(entry)
            for page in paginate(lambda token: self._list_page(path, token))
            for entry in page
        ]
        logger.debug(f"Deleting {len(keys)} objects under prefix [{path}]")
        deleted = [self._delete_key(key) for key in keys]
        return any(deleted)

    def _content_type(self, native: str | None, data: bytes | None) -> str:
        """Prefer the stored content type; sniff only when bytes are at hand."""
        if native:
            return native
        if data is not None:
            return self.content_type_resolver.resolve(data)
        return UNKNOWN_CONTENT_TYPE

    @abstractmethod
    def _list_page(self, prefix: str | None, token: str | None) -> tuple[list[EntryT], str | None]:
        """Fetch one listing page: ``(entries, next continuation token)``."""
        ...

    @abstractmethod
    def _entry_key(self, entry: EntryT) -> str: ...

    @abstractmethod
    def _entry_to_blob(self, entry: EntryT, data: bytes | None) -> Blob: ...

    @abstractmethod
    def _get_blob(self, key: str) -> Blob | None: ...

    @abstractmethod
    def _download(self, key: str) -> bytes | None:
        """Fetch an object's full content, or None if it does not exist."""
        ...

    @abstractmethod
    def _delete_key(self, key: str) -> bool: ...


def mask(secret: Any) -> str:
    """Mask a credential for log output."""
    return "*" * len(str(secret)) if secret else ""
