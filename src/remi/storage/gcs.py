"""Google Cloud Storage backend."""

from __future__ import annotations

import io
import logging
import os
from typing import Any, BinaryIO, cast

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from pydantic import BaseModel, field_validator

from remi.errors import StorageError
from remi.storage.base import Blob, UploadRequest
from remi.storage.content_type import ContentTypeResolver
from remi.storage.object_store import ObjectStorageService

logger = logging.getLogger(__name__)


class GcsConfig(BaseModel):
    """Configuration for the GCS backend.

    Without ``credentials_file`` the client falls back to application
    default credentials.
    """

    bucket: str = "remi"
    project: str | None = None
    credentials_file: str | None = None
    page_size: int = 1000

    @field_validator("credentials_file")
    @classmethod
    def _check_credentials_file(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if not os.path.exists(value):
            raise ValueError(f"Credentials file [{value}] must be a valid file path")
        if os.path.isdir(value):
            raise ValueError(f"Credentials file [{value}] pointed towards a directory")
        return value


class GcsStorageService(ObjectStorageService[GcsConfig, Any]):
    """GCS storage implementation using google-cloud-storage."""

    scheme = "gcs"

    def __init__(
        self,
        config: GcsConfig,
        content_type_resolver: ContentTypeResolver | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(config, content_type_resolver)
        self._client = client
        self._owns_client = client is None
        self._bucket: Any | None = None

    @property
    def name(self) -> str:
        return "remi:gcs"

    def _create_client(self) -> Any:
        credentials_file = self.config.credentials_file
        if credentials_file:
            if os.path.islink(credentials_file):
                credentials_file = os.path.realpath(credentials_file)
                logger.info(f"Resolved symbolic link for credentials to [{credentials_file}]")
            return storage.Client.from_service_account_json(
                credentials_file, project=self.config.project
            )
        return storage.Client(project=self.config.project)

    def _init(self) -> None:
        bucket_name = self.config.bucket
        logger.info("Initializing Google Cloud Storage provider")
        try:
            if self._client is None:
                self._client = self._create_client()

            bucket = self._client.lookup_bucket(bucket_name)
            if bucket is None:
                logger.warning(f"Bucket [{bucket_name}] doesn't exist, creating")
                bucket = self._client.create_bucket(bucket_name)
        except (GoogleAPIError, GoogleAuthError) as exc:
            raise StorageError("Failed to initialize bucket", path=bucket_name) from exc

        self._bucket = bucket

    def _close(self) -> None:
        self._bucket = None
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def _object(self, key: str) -> Any:
        return cast(Any, self._bucket).blob(key)

    def _list_page(self, prefix: str | None, token: str | None) -> tuple[list[Any], str | None]:
        try:
            iterator = self._client.list_blobs(
                self.config.bucket,
                prefix=prefix,
                page_token=token,
                page_size=self.config.page_size,
            )
            page = next(iterator.pages, None)
            entries = list(page) if page is not None else []
        except GoogleAPIError as exc:
            raise StorageError("Failed to list objects", path=prefix or self.config.bucket) from exc

        return entries, iterator.next_page_token

    def _entry_key(self, entry: Any) -> str:
        return cast(str, entry.name)

    def _entry_to_blob(self, entry: Any, data: bytes | None) -> Blob:
        return Blob(
            name=entry.name,
            path=self._blob_path(entry.name),
            size=len(data) if data is not None else int(entry.size or 0),
            content_type=self._content_type(entry.content_type, data),
            etag=entry.etag,
            created_at=entry.time_created,
            last_modified_at=entry.updated,
            content=io.BytesIO(data) if data is not None else None,
        )

    def _download(self, key: str) -> bytes | None:
        try:
            return cast(bytes, self._object(key).download_as_bytes())
        except NotFound:
            return None
        except GoogleAPIError as exc:
            raise StorageError("Failed to download object", path=key) from exc

    def _get_blob(self, key: str) -> Blob | None:
        try:
            entry = cast(Any, self._bucket).get_blob(key)
            if entry is None:
                return None
            data = cast(bytes, entry.download_as_bytes())
        except NotFound:
            return None
        except GoogleAPIError as exc:
            raise StorageError("Failed to download object", path=key) from exc

        return self._entry_to_blob(entry, data)

    def _upload(self, request: UploadRequest) -> None:
        stream = request.open()
        try:
            data = stream.read()
        finally:
            stream.close()

        try:
            self._object(request.path).upload_from_string(data, content_type=request.content_type)
        except GoogleAPIError as exc:
            raise StorageError("Failed to upload object", path=request.path) from exc

        logger.debug(
            f"Uploaded [{request.path}] to bucket [{self.config.bucket}] ({len(data)} bytes)"
        )

    def _exists(self, path: str) -> bool:
        try:
            return cast(bool, self._object(path).exists())
        except GoogleAPIError as exc:
            raise StorageError("Failed to check object", path=path) from exc

    def _delete_key(self, key: str) -> bool:
        try:
            self._object(key).delete()
        except NotFound:
            return False
        except GoogleAPIError as exc:
            raise StorageError("Failed to delete object", path=key) from exc

        logger.debug(f"Deleted [{key}] from bucket [{self.config.bucket}]")
        return True

    def _open(self, path: str) -> BinaryIO | None:
        try:
            entry = cast(Any, self._bucket).get_blob(path)
        except GoogleAPIError as exc:
            raise StorageError("Failed to open object", path=path) from exc
        if entry is None:
            return None
        return cast(BinaryIO, entry.open("rb"))
