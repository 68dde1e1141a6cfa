"""
Azure Blob Storage Backend

Drives a real Azure Storage account (or an emulator speaking the same API)
through the async azure-storage-blob SDK.

Author: Ayodele Oladeji
Date: 2025
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from ..exceptions import (
    AuthError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ObjectNotFoundError,
    StorageError,
    TransientError,
    ValidationError,
)
from ..models import (
    Container,
    ContainerProperties,
    ObjectEntry,
    PublicAccessLevel,
)
from .base import StorageBackend

logger = logging.getLogger(__name__)

# Azure requires at least 3 characters, stricter than the shared rule
AZURE_MIN_CONTAINER_NAME_LENGTH = 3


class AzureBlobBackend(StorageBackend):
    """
    Azure Blob Storage backend.

    Credentials come from configuration: either a connection string or an
    account URL plus credential (account key, SAS token or token credential).

    Uploads go through upload_blob with an async chunk iterator. The SDK
    stages blocks and commits the block list at the end, so an interrupted
    upload never produces a visible partial blob.
    """

    backend_type = "azure"

    def __init__(
        self,
        connection_string: Optional[str] = None,
        account_url: Optional[str] = None,
        credential: Optional[object] = None,
        service_client: Optional[BlobServiceClient] = None,
    ):
        if service_client is not None:
            self._service = service_client
            return
        if not (connection_string or account_url):
            raise ValidationError(
                "Azure backend requires a connection string or an account URL"
            )

        # The SDK reports malformed settings as ValueError
        try:
            if connection_string:
                self._service = BlobServiceClient.from_connection_string(connection_string)
            else:
                self._service = BlobServiceClient(account_url=account_url, credential=credential)
        except ValueError as e:
            source = "connection string" if connection_string else "account URL"
            raise ValidationError(
                f"Invalid Azure {source}: {e}",
                details={"setting": source},
            ) from e

    @asynccontextmanager
    async def _translate(self, container_name: str, object_name: Optional[str] = None):
        """Map azure.core exceptions onto the portablob taxonomy."""
        try:
            yield
        except StorageError:
            raise
        except ResourceExistsError as e:
            raise ContainerAlreadyExistsError(container_name) from e
        except ResourceNotFoundError as e:
            if object_name is not None and getattr(e, "error_code", None) != "ContainerNotFound":
                raise ObjectNotFoundError(container_name, object_name) from e
            raise ContainerNotFoundError(container_name) from e
        except ClientAuthenticationError as e:
            raise AuthError(f"Credentials rejected by Azure: {e.message}") from e
        except (ServiceRequestError, ServiceResponseError) as e:
            raise TransientError(f"Azure service unreachable: {e.message}") from e
        except HttpResponseError as e:
            raise _from_status(e, container_name) from e
        except AzureError as e:
            raise TransientError(f"Azure request failed: {e.message}") from e

    # ========== Container Operations ==========

    async def create_container(
        self,
        name: str,
        metadata: Optional[Dict[str, str]] = None,
        public_access: PublicAccessLevel = PublicAccessLevel.NONE,
    ) -> Container:
        if len(name) < AZURE_MIN_CONTAINER_NAME_LENGTH:
            raise ValidationError(
                f"Container name must be at least {AZURE_MIN_CONTAINER_NAME_LENGTH} characters",
                details={"container": name},
            )

        access = None if public_access == PublicAccessLevel.NONE else public_access.value
        async with self._translate(name):
            await self._service.create_container(name, metadata=metadata or None, public_access=access)
        return await self.get_container(name)

    async def get_container(self, name: str) -> Container:
        async with self._translate(name):
            props = await self._service.get_container_client(name).get_container_properties()

        return Container(
            name=name,
            properties=ContainerProperties(
                etag=(props.etag or "").strip('"'),
                created_on=props.last_modified,
                last_modified=props.last_modified,
                public_access=PublicAccessLevel(props.public_access or PublicAccessLevel.NONE.value),
            ),
            metadata=dict(props.metadata or {}),
        )

    async def set_container_metadata(
        self,
        name: str,
        metadata: Dict[str, str],
    ) -> Container:
        async with self._translate(name):
            await self._service.get_container_client(name).set_container_metadata(metadata=metadata)
        return await self.get_container(name)

    async def delete_container(self, name: str) -> None:
        async with self._translate(name):
            await self._service.get_container_client(name).delete_container()

    # ========== Object Operations ==========

    async def put_object(
        self,
        container_name: str,
        object_name: str,
        chunks: AsyncIterator[bytes],
        content_type: str = "application/octet-stream",
    ) -> ObjectEntry:
        blob_client = self._service.get_blob_client(container=container_name, blob=object_name)
        # Object-level 404s on upload always mean the container is missing
        async with self._translate(container_name):
            await blob_client.upload_blob(
                chunks,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )
            props = await blob_client.get_blob_properties()

        return _entry_from_properties(container_name, props)

    async def open_object(
        self,
        container_name: str,
        object_name: str,
    ) -> Tuple[ObjectEntry, AsyncIterator[bytes]]:
        blob_client = self._service.get_blob_client(container=container_name, blob=object_name)
        async with self._translate(container_name, object_name):
            downloader = await blob_client.download_blob()

        entry = _entry_from_properties(container_name, downloader.properties)
        return entry, self._iter_download(downloader, container_name, object_name)

    async def _iter_download(self, downloader, container_name: str, object_name: str) -> AsyncIterator[bytes]:
        async with self._translate(container_name, object_name):
            async for chunk in downloader.chunks():
                yield chunk

    async def list_objects_page(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        marker: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[ObjectEntry], Optional[str]]:
        container_client = self._service.get_container_client(container_name)
        async with self._translate(container_name):
            pages = container_client.list_blobs(
                name_starts_with=prefix,
                results_per_page=max_results,
            ).by_page(continuation_token=marker)

            entries: List[ObjectEntry] = []
            async for page in pages:
                async for blob in page:
                    entries.append(_entry_from_properties(container_name, blob))
                break

        return entries, pages.continuation_token

    async def delete_object(self, container_name: str, object_name: str) -> None:
        blob_client = self._service.get_blob_client(container=container_name, blob=object_name)
        async with self._translate(container_name, object_name):
            await blob_client.delete_blob()

    async def close(self) -> None:
        await self._service.close()


def _entry_from_properties(container_name: str, props) -> ObjectEntry:
    """Build an ObjectEntry from SDK BlobProperties."""
    content_settings = getattr(props, "content_settings", None)
    content_type = getattr(content_settings, "content_type", None) or "application/octet-stream"
    return ObjectEntry(
        name=props.name,
        container_name=container_name,
        size=props.size or 0,
        last_modified=props.last_modified,
        etag=(props.etag or "").strip('"') or None,
        content_type=content_type,
    )


def _from_status(error: HttpResponseError, container_name: str) -> StorageError:
    """Classify an HTTP error by status code."""
    status = error.status_code or 0
    message = error.message or str(error)

    if status in (401, 403):
        return AuthError(f"Credentials rejected by Azure: {message}")
    if status == 400:
        return ValidationError(message, details={"container": container_name})
    if status == 404:
        return ContainerNotFoundError(container_name)
    if status == 409:
        return ContainerAlreadyExistsError(container_name)

    logger.warning(f"Unclassified Azure error status {status}: {message}")
    return TransientError(message, details={"status_code": status})
