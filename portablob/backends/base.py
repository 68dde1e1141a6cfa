"""
Storage Backend Interface

Defines the capability set every object store backend must implement.

Author: Ayodele Oladeji
Date: 2025
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional, Tuple

from ..exceptions import NotFoundError
from ..models import Container, ObjectEntry, PublicAccessLevel


class StorageBackend(ABC):
    """
    Abstract base class for object store backends.

    All backends (in-memory, filesystem, Azure) implement this interface so
    that ObjectStoreClient can drive any of them without vendor lock-in.

    **Capabilities**:
    create, get-properties, set-metadata, get-metadata, upload, list,
    download, delete.

    **Concurrency**:
    All methods are async and must be safe to call from concurrent tasks.
    Operations on unrelated containers or objects must not be serialized
    beyond short critical sections.

    **Uploads**:
    put_object receives an async iterator of chunks. A backend must not make
    the object visible until the iterator is exhausted, so a cancelled or
    failed transfer leaves either the previous object or none.

    **Error Handling**:
    Backends raise portablob exceptions where the failure is known
    (ContainerNotFoundError, ContainerAlreadyExistsError, ...). Anything else
    is translated by the client.
    """

    #: Short identifier used in logs and configuration
    backend_type: str = "abstract"

    @abstractmethod
    async def create_container(
        self,
        name: str,
        metadata: Optional[Dict[str, str]] = None,
        public_access: PublicAccessLevel = PublicAccessLevel.NONE,
    ) -> Container:
        """
        Create a new container.

        Args:
            name: Validated container name
            metadata: Optional initial metadata
            public_access: Public access level

        Returns:
            Created container

        Raises:
            ContainerAlreadyExistsError: If the name is taken
        """
        pass

    @abstractmethod
    async def get_container(self, name: str) -> Container:
        """
        Fetch a container with its properties and metadata.

        Raises:
            ContainerNotFoundError: If container not found
        """
        pass

    @abstractmethod
    async def set_container_metadata(
        self,
        name: str,
        metadata: Dict[str, str],
    ) -> Container:
        """
        Replace the container's entire metadata map.

        Readers observe either the old map or the new one, never a mix.

        Raises:
            ContainerNotFoundError: If container not found
        """
        pass

    @abstractmethod
    async def delete_container(self, name: str) -> None:
        """
        Delete a container and every object in it.

        Raises:
            ContainerNotFoundError: If container not found
        """
        pass

    @abstractmethod
    async def put_object(
        self,
        container_name: str,
        object_name: str,
        chunks: AsyncIterator[bytes],
        content_type: str = "application/octet-stream",
    ) -> ObjectEntry:
        """
        Store an object, overwriting any object with the same name.

        Args:
            container_name: Container name
            object_name: Object name
            chunks: Async iterator yielding the payload
            content_type: Content type recorded with the object

        Returns:
            Entry describing the committed object

        Raises:
            ContainerNotFoundError: If container not found
        """
        pass

    @abstractmethod
    async def open_object(
        self,
        container_name: str,
        object_name: str,
    ) -> Tuple[ObjectEntry, AsyncIterator[bytes]]:
        """
        Open an object for reading.

        Returns:
            Tuple of (entry, async iterator over the content)

        Raises:
            ContainerNotFoundError: If container not found
            ObjectNotFoundError: If object not found
        """
        pass

    @abstractmethod
    async def list_objects_page(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        marker: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[ObjectEntry], Optional[str]]:
        """
        List one page of objects, sorted by name.

        Args:
            container_name: Container name
            prefix: Optional name prefix filter
            marker: Continuation marker returned by the previous page
            max_results: Optional page size

        Returns:
            Tuple of (entries, next_marker); next_marker is None on the last page

        Raises:
            ContainerNotFoundError: If container not found
        """
        pass

    @abstractmethod
    async def delete_object(self, container_name: str, object_name: str) -> None:
        """
        Delete a single object.

        Raises:
            ContainerNotFoundError: If container not found
            ObjectNotFoundError: If object not found
        """
        pass

    async def container_exists(self, name: str) -> bool:
        """Check if container exists."""
        try:
            await self.get_container(name)
        except NotFoundError:
            return False
        return True

    async def close(self) -> None:
        """Release backend resources (connections, handles)."""
        pass
