from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REMI_", env_file=".env", extra="ignore", populate_by_name=True
    )

    # Storage backend: fs, s3, minio, azure, gcs
    storage_backend: str = "fs"

    # Filesystem
    fs_directory: str = "./data"

    # S3-compatible object storage (when storage_backend="s3" or "minio")
    s3_bucket: str = "remi"
    s3_region: str = Field(
        default="us-east-1", validation_alias=AliasChoices("REMI_S3_REGION", "AWS_REGION")
    )
    s3_endpoint: str | None = None
    s3_provider: str = "amazon"
    s3_access_key_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REMI_S3_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
    )
    s3_secret_access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REMI_S3_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"),
    )
    s3_default_bucket_acl: str = "private"
    s3_default_object_acl: str | None = None
    s3_prefix: str | None = None
    s3_path_style: bool = False

    # Azure Blob Storage (when storage_backend="azure")
    azure_container: str = "remi"
    azure_account: str | None = None
    azure_connection_string: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "REMI_AZURE_CONNECTION_STRING", "AZURE_STORAGE_CONNECTION_STRING"
        ),
    )
    azure_sas_token: str | None = None
    azure_account_key: str | None = None

    # Google Cloud Storage (when storage_backend="gcs")
    gcs_bucket: str = "remi"
    gcs_project: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REMI_GCS_PROJECT", "GOOGLE_CLOUD_PROJECT"),
    )
    gcs_credentials_file: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "REMI_GCS_CREDENTIALS_FILE", "GOOGLE_APPLICATION_CREDENTIALS"
        ),
    )

    # Logging
    log_level: str = "WARNING"
    log_json: bool = False


settings = Settings()
