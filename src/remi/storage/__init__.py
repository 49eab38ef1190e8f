"""Blob storage services for remi.

One contract, four backends:
- Local filesystem storage (default)
- S3-compatible storage (AWS S3, MinIO, Wasabi)
- Azure Blob Storage
- Google Cloud Storage

Every backend returns the same ``Blob`` descriptors, filters listings the
same way and reports not-found as ``None``/``False`` instead of raising.
"""

from remi.storage.azure import AzureBlobStorageConfig, AzureBlobStorageService
from remi.storage.base import Blob, ListBlobsRequest, StorageService, UploadRequest
from remi.storage.content_type import (
    UNKNOWN_CONTENT_TYPE,
    ContentTypeResolver,
    MagicContentTypeResolver,
)
from remi.storage.etag import compute_etag
from remi.storage.factory import create_storage_service, get_storage_service
from remi.storage.gcs import GcsConfig, GcsStorageService
from remi.storage.local import FilesystemConfig, FilesystemStats, FilesystemStorageService
from remi.storage.paths import normalize_path
from remi.storage.s3 import S3Config, S3Provider, S3StorageService

__all__ = [
    "Blob",
    "ListBlobsRequest",
    "UploadRequest",
    "StorageService",
    "ContentTypeResolver",
    "MagicContentTypeResolver",
    "UNKNOWN_CONTENT_TYPE",
    "compute_etag",
    "normalize_path",
    "FilesystemConfig",
    "FilesystemStats",
    "FilesystemStorageService",
    "S3Config",
    "S3Provider",
    "S3StorageService",
    "AzureBlobStorageConfig",
    "AzureBlobStorageService",
    "GcsConfig",
    "GcsStorageService",
    "create_storage_service",
    "get_storage_service",
]
