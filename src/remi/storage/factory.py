"""Storage service factory."""

from __future__ import annotations

from remi.config import Settings, settings
from remi.storage.azure import AzureBlobStorageConfig, AzureBlobStorageService
from remi.storage.base import StorageService
from remi.storage.gcs import GcsConfig, GcsStorageService
from remi.storage.local import FilesystemConfig, FilesystemStorageService
from remi.storage.s3 import S3Config, S3Provider, S3StorageService

_service: StorageService | None = None


def create_storage_service(config: Settings) -> StorageService:
    """Build an uninitialized StorageService for the configured backend."""
    backend = config.storage_backend.lower()
    if backend in {"fs", "filesystem", "local"}:
        return FilesystemStorageService(FilesystemConfig(directory=config.fs_directory))

    if backend in {"s3", "minio"}:
        provider = S3Provider(config.s3_provider.lower())
        if backend == "minio":
            provider = S3Provider.CUSTOM
        return S3StorageService(
            S3Config(
                bucket=config.s3_bucket,
                region=config.s3_region,
                endpoint=config.s3_endpoint,
                provider=provider,
                access_key_id=config.s3_access_key_id,
                secret_access_key=config.s3_secret_access_key,
                default_bucket_acl=config.s3_default_bucket_acl,
                default_object_acl=config.s3_default_object_acl,
                prefix=config.s3_prefix,
                path_style=config.s3_path_style or backend == "minio",
            )
        )

    if backend == "azure":
        if not config.azure_connection_string and not config.azure_account:
            raise ValueError(
                "REMI_AZURE_CONNECTION_STRING or REMI_AZURE_ACCOUNT is required "
                "for storage_backend='azure'"
            )
        return AzureBlobStorageService(
            AzureBlobStorageConfig(
                container=config.azure_container,
                account=config.azure_account,
                connection_string=config.azure_connection_string,
                sas_token=config.azure_sas_token,
                account_key=config.azure_account_key,
            )
        )

    if backend == "gcs":
        return GcsStorageService(
            GcsConfig(
                bucket=config.gcs_bucket,
                project=config.gcs_project,
                credentials_file=config.gcs_credentials_file,
            )
        )

    raise ValueError(
        "Unsupported storage_backend. Supported values: fs, s3, minio, azure, gcs."
    )


def get_storage_service(config: Settings | None = None) -> StorageService:
    """Return a singleton, initialized StorageService based on settings."""
    global _service
    if _service is not None:
        return _service

    service = create_storage_service(config or settings)
    service.init()
    _service = service
    return _service
