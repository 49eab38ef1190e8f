"""Local filesystem storage.

Keys map to files below a root directory:
    {directory}/{key}

The filesystem has no native ETag, so one is computed from the file content
(see ``remi.storage.etag``). Listing reads every matching file fully into
memory to compute that ETag.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import BinaryIO

from pydantic import BaseModel

from remi.errors import InvalidArgumentError, StorageError
from remi.storage.base import Blob, ListBlobsRequest, StorageService, UploadRequest
from remi.storage.content_type import ContentTypeResolver
from remi.storage.etag import compute_etag
from remi.storage.listing import BlobFilter, WalkStats, walk_files
from remi.storage.paths import normalize_path, normalize_root

logger = logging.getLogger(__name__)


class FilesystemConfig(BaseModel):
    """Configuration for the filesystem backend."""

    directory: str = "./data"


@dataclass(frozen=True)
class FilesystemStats:
    """Disk usage of the drive holding the storage directory, in bytes."""

    total_space: int
    used_space: int
    usable_space: int
    drive: str
    type: str


class FilesystemStorageService(StorageService[FilesystemConfig]):
    """Filesystem storage backend."""

    scheme = "fs"

    def __init__(
        self,
        config: FilesystemConfig | str,
        content_type_resolver: ContentTypeResolver | None = None,
    ) -> None:
        if isinstance(config, str):
            config = FilesystemConfig(directory=config)
        super().__init__(config, content_type_resolver)

    @property
    def name(self) -> str:
        return "remi:filesystem"

    @property
    def directory(self) -> str:
        """Canonical absolute path of the storage root."""
        return normalize_root(self.config.directory)

    def normalize_path(self, path: str) -> str:
        """Resolve ``./`` and ``~/`` prefixes against the storage root."""
        return normalize_path(path, self.directory)

    def _resolve(self, path: str) -> tuple[str, str]:
        """Map a key to ``(absolute file path, normalized key)``.

        Raises:
            InvalidArgumentError: If the key points outside the storage root
        """
        root = self.directory
        normalized = self.normalize_path(path)
        if path.startswith("/") and not _is_within(os.path.normpath(normalized), root):
            # "/a/b" is a key rooted at the storage directory, not the host
            normalized = normalized.lstrip("/")

        full = os.path.normpath(os.path.join(root, normalized))
        if not _is_within(full, root):
            raise InvalidArgumentError(path, "path escapes the storage directory")
        if not _is_within(os.path.realpath(full), root):
            raise InvalidArgumentError(path, "path resolves outside the storage directory")

        key = os.path.relpath(full, root).replace(os.sep, "/")
        return full, "" if key == "." else key

    def _init(self) -> None:
        directory = self.directory
        if not os.path.exists(directory):
            logger.debug(f"Directory [{directory}] does not exist on local disk, creating")
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as exc:
                raise StorageError("Unable to create storage directory", path=directory) from exc

        if not os.path.isdir(directory):
            raise StorageError("Storage directory is not a directory", path=directory)

        if _is_read_only(directory):
            raise StorageError("Storage directory cannot be read-only", path=directory)

        stats = self.stats()
        logger.info(
            f"Initialized filesystem storage service on directory [{directory}] "
            f"with drive [{stats.drive} ({stats.type})]"
        )

    def _describe(self, full: str, key: str, data: bytes, include_content: bool) -> Blob:
        st = os.stat(full)
        birthtime = getattr(st, "st_birthtime", None)
        return Blob(
            name=os.path.basename(full),
            path=self._blob_path(key),
            size=len(data),
            content_type=self.content_type_resolver.resolve(data),
            etag=compute_etag(data),
            created_at=datetime.fromtimestamp(birthtime, UTC) if birthtime else None,
            last_modified_at=datetime.fromtimestamp(st.st_mtime, UTC),
            content=io.BytesIO(data) if include_content else None,
        )

    def _blob(self, path: str) -> Blob | None:
        full, key = self._resolve(path)
        if os.path.isdir(full):
            raise InvalidArgumentError(path, "path is a directory")
        if not os.path.exists(full):
            return None

        try:
            with open(full, "rb") as f:
                data = f.read()
            return self._describe(full, key, data, include_content=True)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError("Failed to read blob", path=path) from exc

    def _blobs(self, request: ListBlobsRequest) -> list[Blob]:
        blob_filter = BlobFilter.from_request(request)
        root = self.directory
        top = root
        key_prefix: str | None = None

        if request.prefix:
            full, key = self._resolve(request.prefix)
            if os.path.isdir(full):
                top = full
            elif request.prefix.endswith("/"):
                return []
            else:
                # Not a directory: walk its parent and match keys by prefix
                top = os.path.dirname(full)
                key_prefix = key
                if not os.path.isdir(top):
                    return []

        stats = WalkStats()
        blobs: list[Blob] = []
        for full in walk_files(top, stats):
            key = os.path.relpath(full, root).replace(os.sep, "/")
            if key_prefix is not None and not key.startswith(key_prefix):
                continue

            stats.visited += 1
            if not blob_filter.allows(key):
                continue

            try:
                with open(full, "rb") as f:
                    data = f.read()
                blobs.append(self._describe(full, key, data, request.include_content))
            except OSError as exc:
                logger.warning(f"Failed to visit file [{full}]: {exc}")
                stats.failed += 1

        logger.info(
            f"Walked through directory [{top}] and visited {stats.visited} files, "
            f"failed to visit {stats.failed} files ({stats.succeeded_percent:.0f}% succeeded)"
        )
        return blobs

    def _upload(self, request: UploadRequest) -> None:
        full, _ = self._resolve(request.path)
        if os.path.isdir(full):
            raise InvalidArgumentError(request.path, "path is a directory")

        stream = request.open()
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as out:
                shutil.copyfileobj(stream, out)
        except OSError as exc:
            raise StorageError("Failed to upload blob", path=request.path) from exc
        finally:
            stream.close()

        logger.debug(f"Uploaded [{request.path}] to [{full}]")

    def _exists(self, path: str) -> bool:
        full, key = self._resolve(path)
        if not key:
            return False
        return os.path.exists(full)

    def _delete(self, path: str) -> bool:
        full, key = self._resolve(path)
        if not key:
            raise InvalidArgumentError(path, "cannot delete the storage directory itself")

        logger.debug(f"Deleting path [{full}]")
        try:
            if os.path.isdir(full) and not os.path.islink(full):
                logger.debug(f"Deleting directory [{full}] recursively")
                shutil.rmtree(full)
                return True
            os.remove(full)
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError("Failed to delete blob", path=path) from exc

    def _open(self, path: str) -> BinaryIO | None:
        full, _ = self._resolve(path)
        if os.path.isdir(full):
            raise InvalidArgumentError(path, "path is a directory")
        try:
            return open(full, "rb")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError("Failed to open blob", path=path) from exc

    def stats(self) -> FilesystemStats:
        """Disk usage of the drive the storage directory lives on."""
        directory = self.directory
        try:
            usage = shutil.disk_usage(directory)
        except OSError as exc:
            raise StorageError("Unable to access the file store", path=directory) from exc

        drive = _mount_point(directory)
        return FilesystemStats(
            total_space=usage.total,
            used_space=usage.used,
            usable_space=usage.free,
            drive=drive,
            type=_filesystem_type(drive),
        )


def _is_within(path: str, root: str) -> bool:
    return path == root or os.path.commonpath([path, root]) == root


def _is_read_only(directory: str) -> bool:
    if hasattr(os, "statvfs") and os.statvfs(directory).f_flag & os.ST_RDONLY:
        return True
    return not os.access(directory, os.W_OK)


def _mount_point(path: str) -> str:
    path = os.path.realpath(path)
    while not os.path.ismount(path):
        parent = os.path.dirname(path)
        if parent == path:
            break
        path = parent
    return path


def _filesystem_type(mount_point: str) -> str:
    try:
        with open("/proc/mounts", encoding="utf-8") as f:
            for line in f:
                fields = line.split()
                if len(fields) >= 3 and fields[1] == mount_point:
                    return fields[2]
    except OSError:
        pass
    return "unknown"
