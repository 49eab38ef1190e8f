"""S3-compatible storage backend.

Supports:
- AWS S3
- MinIO and other custom endpoints
- Wasabi
"""

from __future__ import annotations

import io
import logging
from enum import Enum
from typing import Any, BinaryIO, cast

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, model_validator

from remi.errors import StorageError
from remi.storage.base import Blob, UploadRequest
from remi.storage.content_type import ContentTypeResolver
from remi.storage.object_store import ObjectStorageService, mask

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class S3Provider(str, Enum):
    """Known S3-compatible providers and their endpoints."""

    AMAZON = "amazon"
    WASABI = "wasabi"
    CUSTOM = "custom"

    @property
    def endpoint(self) -> str | None:
        if self is S3Provider.WASABI:
            return "https://s3.wasabisys.com"
        return None


class S3Config(BaseModel):
    """Configuration for the S3 backend.

    ``provider=custom`` (MinIO, Ceph, ...) requires ``endpoint``. Credentials
    default to the AWS SDK chain when left unset. ``prefix`` namespaces every
    key inside the bucket; blob names and paths never include it.
    ``path_style`` addresses the bucket in the URL path, as most self-hosted
    stores expect.
    """

    bucket: str = "remi"
    region: str = "us-east-1"
    endpoint: str | None = None
    provider: S3Provider = S3Provider.AMAZON
    access_key_id: str | None = None
    secret_access_key: str | None = None
    default_bucket_acl: str = "private"
    default_object_acl: str | None = None
    page_size: int = 1000
    prefix: str | None = None
    path_style: bool = False

    @model_validator(mode="after")
    def _check_endpoint(self) -> "S3Config":
        if self.provider is S3Provider.CUSTOM and not self.endpoint:
            raise ValueError("S3 provider 'custom' requires an endpoint")
        return self

    @property
    def endpoint_url(self) -> str | None:
        return self.endpoint or self.provider.endpoint

    @property
    def key_prefix(self) -> str:
        prefix = (self.prefix or "").strip("/")
        return f"{prefix}/" if prefix else ""


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _is_not_found(exc: ClientError) -> bool:
    return _error_code(exc) in NOT_FOUND_CODES


class S3StorageService(ObjectStorageService[S3Config, dict[str, Any]]):
    """S3-compatible storage backend using boto3."""

    scheme = "s3"

    def __init__(
        self,
        config: S3Config,
        content_type_resolver: ContentTypeResolver | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(config, content_type_resolver)
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "remi:s3"

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def _create_client(self) -> Any:
        config = self.config
        if config.access_key_id:
            logger.info(
                f"Using static credentials [{mask(config.access_key_id)}] for S3 authentication"
            )
        client_config = BotoConfig(s3={"addressing_style": "path"}) if config.path_style else None
        return boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=client_config,
        )

    def _object_key(self, key: str) -> str:
        """Bucket key for a blob key, inside the configured prefix."""
        return f"{self.config.key_prefix}{key}"

    def _init(self) -> None:
        if self._client is None:
            try:
                self._client = self._create_client()
            except BotoCoreError as exc:
                raise StorageError("Failed to create S3 client") from exc

        logger.info(f"Initializing S3 storage service on bucket [{self.bucket}]")
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as exc:
            if not _is_not_found(exc):
                raise StorageError("Failed to access bucket", path=self.bucket) from exc
        except BotoCoreError as exc:
            raise StorageError("Failed to access bucket", path=self.bucket) from exc

        logger.warning(f"Bucket [{self.bucket}] doesn't exist, creating")
        params: dict[str, Any] = {"Bucket": self.bucket, "ACL": self.config.default_bucket_acl}
        if self.config.provider is S3Provider.AMAZON and self.config.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.config.region}
        try:
            self._client.create_bucket(**params)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError("Failed to create bucket", path=self.bucket) from exc

    def _close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def _list_page(
        self, prefix: str | None, token: str | None
    ) -> tuple[list[dict[str, Any]], str | None]:
        params: dict[str, Any] = {"Bucket": self.bucket, "MaxKeys": self.config.page_size}
        object_prefix = self._object_key(prefix or "")
        if object_prefix:
            params["Prefix"] = object_prefix
        if token:
            params["ContinuationToken"] = token

        try:
            response = self._client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError("Failed to list objects", path=prefix or self.bucket) from exc

        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return list(response.get("Contents", [])), next_token

    def _entry_key(self, entry: dict[str, Any]) -> str:
        key = cast(str, entry["Key"])
        return key.removeprefix(self.config.key_prefix)

    def _entry_to_blob(self, entry: dict[str, Any], data: bytes | None) -> Blob:
        key = self._entry_key(entry)
        return Blob(
            name=key,
            path=self._blob_path(key),
            size=len(data) if data is not None else int(entry.get("Size", 0)),
            content_type=self._content_type(None, data),
            etag=entry.get("ETag"),
            last_modified_at=entry.get("LastModified"),
            content=io.BytesIO(data) if data is not None else None,
        )

    def _get_object(self, key: str) -> dict[str, Any] | None:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self._object_key(key))
            return cast(dict[str, Any], response)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise StorageError("Failed to fetch object", path=key) from exc
        except BotoCoreError as exc:
            raise StorageError("Failed to fetch object", path=key) from exc

    def _read_body(self, key: str, response: dict[str, Any]) -> bytes:
        body = response["Body"]
        try:
            return cast(bytes, body.read())
        except (ClientError, BotoCoreError) as exc:
            raise StorageError("Failed to read object body", path=key) from exc
        finally:
            body.close()

    def _get_blob(self, key: str) -> Blob | None:
        response = self._get_object(key)
        if response is None:
            return None

        data = self._read_body(key, response)
        return Blob(
            name=key,
            path=self._blob_path(key),
            size=len(data),
            content_type=self._content_type(response.get("ContentType"), data),
            etag=response.get("ETag"),
            last_modified_at=response.get("LastModified"),
            content=io.BytesIO(data),
        )

    def _download(self, key: str) -> bytes | None:
        response = self._get_object(key)
        if response is None:
            return None
        return self._read_body(key, response)

    def _upload(self, request: UploadRequest) -> None:
        stream = request.open()
        try:
            data = stream.read()
        finally:
            stream.close()

        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": self._object_key(request.path),
            "Body": data,
            "ContentLength": len(data),
            "ContentType": request.content_type,
        }
        if self.config.default_object_acl:
            params["ACL"] = self.config.default_object_acl

        try:
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError("Failed to upload object", path=request.path) from exc

        logger.debug(f"Uploaded [{request.path}] to bucket [{self.bucket}] ({len(data)} bytes)")

    def _exists(self, path: str) -> bool:
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=self._object_key(path))
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise StorageError("Failed to check object", path=path) from exc
        except BotoCoreError as exc:
            raise StorageError("Failed to check object", path=path) from exc

        # Versioned buckets answer with a delete marker for removed keys
        return not response.get("DeleteMarker", False)

    def _delete_key(self, key: str) -> bool:
        # DeleteObject succeeds for missing keys, so look first
        if not self._exists(key):
            return False

        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise StorageError("Failed to delete object", path=key) from exc
        except BotoCoreError as exc:
            raise StorageError("Failed to delete object", path=key) from exc

        logger.debug(f"Deleted [{key}] from bucket [{self.bucket}]")
        return True

    def _open(self, path: str) -> BinaryIO | None:
        response = self._get_object(path)
        if response is None:
            return None
        return cast(BinaryIO, response["Body"])
