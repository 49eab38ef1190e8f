"""Azure Blob Storage backend."""

from __future__ import annotations

import io
import logging
from typing import Any, BinaryIO, cast

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobProperties, BlobServiceClient, ContentSettings
from pydantic import BaseModel

from remi.errors import StorageError
from remi.storage.base import Blob, UploadRequest
from remi.storage.content_type import ContentTypeResolver
from remi.storage.object_store import ObjectStorageService, mask
from remi.storage.streams import chunked_stream

logger = logging.getLogger(__name__)

ENDPOINT_SUFFIX = ".blob.core.windows.net"


class AzureBlobStorageConfig(BaseModel):
    """Configuration for the Azure backend.

    Authenticate with either a connection string, or an account name plus a
    SAS token or account key. The connection string wins when both are set.
    """

    container: str = "remi"
    account: str | None = None
    connection_string: str | None = None
    sas_token: str | None = None
    account_key: str | None = None
    page_size: int = 1000

    @property
    def endpoint(self) -> str | None:
        """Account URL, suffixed with ``.blob.core.windows.net`` when bare."""
        if not self.account:
            return None
        host = self.account.removeprefix("https://").rstrip("/")
        if not host.endswith(ENDPOINT_SUFFIX):
            host = f"{host}{ENDPOINT_SUFFIX}"
        return f"https://{host}"


class AzureBlobStorageService(ObjectStorageService[AzureBlobStorageConfig, BlobProperties]):
    """Azure Blob Storage implementation using the azure-storage-blob client."""

    scheme = "azure"

    def __init__(
        self,
        config: AzureBlobStorageConfig,
        content_type_resolver: ContentTypeResolver | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(config, content_type_resolver)
        self._client = client
        self._owns_client = client is None
        self._container: Any | None = None

    @property
    def name(self) -> str:
        return "remi:azure"

    def _create_client(self) -> Any:
        config = self.config
        if config.connection_string:
            logger.info(
                f"Using connection string [{mask(config.connection_string)}] as authentication"
            )
            return BlobServiceClient.from_connection_string(config.connection_string)

        if config.endpoint:
            credential = config.sas_token or config.account_key
            if config.sas_token:
                logger.info(f"Using SAS token [{mask(config.sas_token)}] as authentication")
            return BlobServiceClient(account_url=config.endpoint, credential=credential)

        raise ValueError("Azure storage requires a connection string or an account name")

    def _init(self) -> None:
        if self._client is None:
            logger.info(f"Initializing Azure client with endpoint [{self.config.endpoint}]")
            self._client = self._create_client()

        self._container = self._client.get_container_client(self.config.container)
        logger.info(f"Creating container [{self.config.container}] if it doesn't exist")
        try:
            if not self._container.exists():
                self._container.create_container()
        except ResourceExistsError:
            pass
        except AzureError as exc:
            raise StorageError("Failed to create container", path=self.config.container) from exc

    def _close(self) -> None:
        self._container = None
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def _blob_client(self, key: str) -> Any:
        return cast(Any, self._container).get_blob_client(key)

    def _list_page(
        self, prefix: str | None, token: str | None
    ) -> tuple[list[BlobProperties], str | None]:
        try:
            pages = (
                cast(Any, self._container)
                .list_blobs(name_starts_with=prefix, results_per_page=self.config.page_size)
                .by_page(continuation_token=token)
            )
            page = next(pages, None)
            entries = list(page) if page is not None else []
        except AzureError as exc:
            path = prefix or self.config.container
            raise StorageError("Failed to list blobs", path=path) from exc

        return entries, pages.continuation_token

    def _entry_key(self, entry: BlobProperties) -> str:
        return cast(str, entry.name)

    def _entry_to_blob(self, entry: BlobProperties, data: bytes | None) -> Blob:
        settings = entry.content_settings
        return Blob(
            name=entry.name,
            path=self._blob_path(entry.name),
            size=len(data) if data is not None else int(entry.size or 0),
            content_type=self._content_type(settings.content_type if settings else None, data),
            etag=entry.etag,
            created_at=entry.creation_time,
            last_modified_at=entry.last_modified,
            content=io.BytesIO(data) if data is not None else None,
        )

    def _download(self, key: str) -> bytes | None:
        try:
            return cast(bytes, self._blob_client(key).download_blob().readall())
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise StorageError("Failed to download blob", path=key) from exc

    def _get_blob(self, key: str) -> Blob | None:
        try:
            downloader = self._blob_client(key).download_blob()
            data = cast(bytes, downloader.readall())
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise StorageError("Failed to download blob", path=key) from exc

        blob = self._entry_to_blob(downloader.properties, data)
        blob.name = key
        blob.path = self._blob_path(key)
        return blob

    def _upload(self, request: UploadRequest) -> None:
        stream = request.open()
        try:
            self._blob_client(request.path).upload_blob(
                stream,
                overwrite=True,
                content_settings=ContentSettings(content_type=request.content_type),
            )
        except AzureError as exc:
            raise StorageError("Failed to upload blob", path=request.path) from exc
        finally:
            stream.close()

        logger.debug(f"Uploaded [{request.path}] to container [{self.config.container}]")

    def _exists(self, path: str) -> bool:
        try:
            return cast(bool, self._blob_client(path).exists())
        except AzureError as exc:
            raise StorageError("Failed to check blob", path=path) from exc

    def _delete_key(self, key: str) -> bool:
        try:
            self._blob_client(key).delete_blob(delete_snapshots="include")
        except ResourceNotFoundError:
            return False
        except AzureError as exc:
            raise StorageError("Failed to delete blob", path=key) from exc

        logger.debug(f"Deleted [{key}] from container [{self.config.container}]")
        return True

    def _open(self, path: str) -> BinaryIO | None:
        try:
            downloader = self._blob_client(path).download_blob()
        except ResourceNotFoundError:
            return None
        except AzureError as exc:
            raise StorageError("Failed to open blob", path=path) from exc
        return chunked_stream(downloader.chunks())
