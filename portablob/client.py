"""
Object Store Client

Vendor-neutral façade over a StorageBackend. Validates arguments, maps every
operation 1:1 onto a backend call, and surfaces failures only through the
portablob error taxonomy.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
import io
import logging
import mimetypes
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    BinaryIO,
    Callable,
    Dict,
    List,
    Optional,
    TypeVar,
    Union,
)

from .backends.base import StorageBackend
from .backends.factory import create_backend
from .core.config_manager import PortablobConfig
from .core.logging_config import log_with_context
from .core.resilience import (
    NO_RETRY,
    RetryPolicy,
    call_with_retry,
    policy_from_config,
    with_timeout,
)
from .exceptions import StorageError, TransientError, ValidationError
from .models import (
    Container,
    ContainerNameValidator,
    ContainerProperties,
    MetadataValidator,
    ObjectEntry,
    ObjectNameValidator,
    PublicAccessLevel,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

ContainerRef = Union[str, Container]
UploadSource = Union[bytes, bytearray, memoryview, BinaryIO]

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class ClientOptions:
    """Tunables for ObjectStoreClient."""

    timeout_seconds: Optional[float] = 30.0
    chunk_size: int = 4 * 1024 * 1024
    list_page_size: int = 1000
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _container_name(container: ContainerRef) -> str:
    """Resolve a container reference to a validated name."""
    name = container.name if isinstance(container, Container) else container
    ContainerNameValidator.validate_raise(name)
    return name


class ObjectListing:
    """
    Lazy, restartable enumeration of a container's objects.

    Every ``async for`` starts a fresh enumeration from the first page.
    Backend pagination is followed transparently; callers only ever see
    complete ObjectEntry values.

    Usage:
        async for entry in client.list_objects("photos"):
            print(entry.name, entry.size)
    """

    def __init__(
        self,
        client: "ObjectStoreClient",
        container_name: str,
        prefix: Optional[str],
        page_size: int,
    ):
        self._client = client
        self.container_name = container_name
        self.prefix = prefix
        self.page_size = page_size

    def __aiter__(self) -> AsyncIterator[ObjectEntry]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ObjectEntry]:
        marker: Optional[str] = None
        while True:
            entries, marker = await self._client._list_page(
                self.container_name, self.prefix, marker, self.page_size
            )
            for entry in entries:
                yield entry
            if not marker:
                break

    async def to_list(self) -> List[ObjectEntry]:
        """Collect every entry."""
        return [entry async for entry in self]

    async def names(self) -> List[str]:
        """Collect every object name."""
        return [entry.name async for entry in self]


class _CapturingSink(io.BytesIO):
    """BytesIO that keeps its content after close()."""

    captured: bytes = b""

    def close(self) -> None:
        if not self.closed:
            self.captured = self.getvalue()
        super().close()


class ObjectStoreClient:
    """
    Client for one object store backend.

    Manages container lifecycle (create, properties, metadata, delete) and
    object transfer (upload, list, download, delete).

    The client keeps no mutable state of its own, so one instance can be
    shared by concurrent tasks working on unrelated containers or objects.

    Error handling:
    - Backend exceptions from the portablob taxonomy pass through unchanged
    - Network and OS level failures become TransientError
    - Anything else becomes TransientError too, logged with its traceback
    - Idempotent reads and metadata replacement are retried on
      TransientError according to the retry policy

    Streams:
    - upload_object closes its source and download_object closes its sink on
      every exit path, including cancellation
    """

    def __init__(self, backend: StorageBackend, options: Optional[ClientOptions] = None):
        self._backend = backend
        self._options = options or ClientOptions()

    @classmethod
    def from_config(cls, config: PortablobConfig) -> "ObjectStoreClient":
        """Build a client and its backend from configuration."""
        client_config = config.client
        options = ClientOptions(
            timeout_seconds=client_config.timeout_seconds,
            chunk_size=client_config.chunk_size,
            list_page_size=client_config.list_page_size,
            retry=policy_from_config(client_config.retry),
        )
        return cls(create_backend(config.backend), options)

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def options(self) -> ClientOptions:
        return self._options

    async def __aenter__(self) -> "ObjectStoreClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying backend."""
        async with self._guard("close"):
            await self._backend.close()

    # ========== Error translation ==========

    @asynccontextmanager
    async def _guard(self, operation: str, **context: Any):
        """Surface every failure as a portablob exception."""
        try:
            yield
        except StorageError as e:
            log_with_context(
                logger, logging.DEBUG,
                f"{operation} failed: {e.error_code}: {e.message}",
                operation=operation, error_kind=e.kind, **context,
            )
            raise
        except (ConnectionError, asyncio.TimeoutError, TimeoutError, OSError) as e:
            log_with_context(
                logger, logging.WARNING,
                f"{operation} failed with transport error: {e}",
                operation=operation, error_type=type(e).__name__, **context,
            )
            raise TransientError(f"{operation} failed: {e}", details=context) from e
        except Exception as e:
            logger.error(f"{operation} failed unexpectedly", exc_info=True)
            raise TransientError(
                f"{operation} failed unexpectedly: {type(e).__name__}: {e}",
                details=context,
            ) from e

    async def _call(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        retry: bool = False,
        **context: Any,
    ) -> T:
        """Run one backend call with timeout, translation, and optional retry."""

        async def attempt() -> T:
            async with self._guard(operation, **context):
                return await with_timeout(operation, func(), self._options.timeout_seconds)

        policy = self._options.retry if retry else NO_RETRY
        return await call_with_retry(operation, attempt, policy)

    # ========== Container Operations ==========

    async def create_container(
        self,
        name: str,
        *,
        metadata: Optional[Dict[str, str]] = None,
        public_access: PublicAccessLevel = PublicAccessLevel.NONE,
    ) -> Container:
        """
        Create a uniquely named container.

        Callers should add a collision-resistant suffix to the name; creating
        an existing container fails.

        Raises:
            ValidationError: If the name or metadata is malformed
            ConflictError: If the container already exists
            AuthError: If the backend rejects the credentials
            TransientError: On network or service faults
        """
        ContainerNameValidator.validate_raise(name)
        metadata = MetadataValidator.validate_raise(metadata or {})
        public_access = PublicAccessLevel(public_access)

        container = await self._call(
            "create_container",
            lambda: self._backend.create_container(name, metadata, public_access),
            container=name,
        )
        logger.info(f"Created container '{name}' on {self._backend.backend_type} backend")
        return container

    async def get_properties(self, container: ContainerRef) -> ContainerProperties:
        """
        Read container properties (public access, last modified, etag).

        Raises:
            NotFoundError: If the container does not exist
        """
        name = _container_name(container)
        result = await self._call(
            "get_properties",
            lambda: self._backend.get_container(name),
            retry=True,
            container=name,
        )
        return result.properties

    async def set_metadata(self, container: ContainerRef, metadata: Dict[str, str]) -> None:
        """
        Replace the container's entire metadata map.

        Keys absent from ``metadata`` are removed; this is not a merge.

        Raises:
            ValidationError: If keys or values are malformed
            NotFoundError: If the container does not exist
        """
        name = _container_name(container)
        metadata = MetadataValidator.validate_raise(metadata)
        await self._call(
            "set_metadata",
            lambda: self._backend.set_container_metadata(name, metadata),
            retry=True,
            container=name,
        )
        log_with_context(
            logger, logging.DEBUG, f"Replaced metadata on '{name}'",
            container=name, keys=sorted(metadata),
        )

    async def get_metadata(self, container: ContainerRef) -> Dict[str, str]:
        """
        Return the container's metadata. Iteration order is not guaranteed.

        Raises:
            NotFoundError: If the container does not exist
        """
        name = _container_name(container)
        result = await self._call(
            "get_metadata",
            lambda: self._backend.get_container(name),
            retry=True,
            container=name,
        )
        return dict(result.metadata)

    async def container_exists(self, container: ContainerRef) -> bool:
        name = _container_name(container)
        return await self._call(
            "container_exists",
            lambda: self._backend.container_exists(name),
            retry=True,
            container=name,
        )

    async def delete_container(self, container: ContainerRef) -> None:
        """
        Delete a container and every object in it.

        Raises:
            NotFoundError: If the container does not exist or was already
                deleted. Cleanup code should treat this as already done.
        """
        name = _container_name(container)
        await self._call(
            "delete_container",
            lambda: self._backend.delete_container(name),
            container=name,
        )
        logger.info(f"Deleted container '{name}'")

    # ========== Object Operations ==========

    async def upload_object(
        self,
        container: ContainerRef,
        name: str,
        source: UploadSource,
        *,
        content_type: Optional[str] = None,
    ) -> ObjectEntry:
        """
        Upload an object, overwriting any object with the same name.

        The source is read to exhaustion and closed on every exit path. The
        object only becomes visible once the whole payload has been
        transferred; a failed or cancelled upload must be retried from the
        start.

        Args:
            container: Container name or Container
            name: Object name
            source: Open binary stream, or bytes
            content_type: Content type; guessed from the name when omitted

        Raises:
            ValidationError: If names are malformed or the source is not binary
            NotFoundError: If the container does not exist
            TransientError: On partial transfer
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            stream = io.BytesIO(bytes(source))
        elif hasattr(source, "read") and hasattr(source, "close"):
            stream = source
        else:
            raise ValidationError(
                f"Upload source must be bytes or a binary stream, got {type(source).__name__}"
            )

        try:
            container_name = _container_name(container)
            ObjectNameValidator.validate_raise(name)
            if content_type is None:
                content_type = mimetypes.guess_type(name)[0] or DEFAULT_CONTENT_TYPE

            async with self._guard("upload_object", container=container_name, object=name):
                entry = await self._backend.put_object(
                    container_name, name, self._read_chunks(stream), content_type
                )
        finally:
            stream.close()

        log_with_context(
            logger, logging.INFO, f"Uploaded '{container_name}/{name}' ({entry.size} bytes)",
            container=container_name, object=name, size=entry.size,
        )
        return entry

    async def _read_chunks(self, stream: BinaryIO) -> AsyncIterator[bytes]:
        """Read a blocking binary stream in chunks, yielding to the loop between reads."""
        while True:
            chunk = stream.read(self._options.chunk_size)
            if not chunk:
                break
            if isinstance(chunk, str):
                raise ValidationError("Upload source must be opened in binary mode")
            yield bytes(chunk)
            await asyncio.sleep(0)

    def list_objects(
        self,
        container: ContainerRef,
        *,
        prefix: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> ObjectListing:
        """
        Enumerate a container's objects, sorted by name.

        Returns a restartable async iterable. A missing container raises
        NotFoundError once iteration starts; an empty container yields
        nothing.
        """
        name = _container_name(container)
        size = self._options.list_page_size if page_size is None else page_size
        if size <= 0:
            raise ValidationError("page_size must be positive")
        return ObjectListing(self, name, prefix, size)

    async def _list_page(
        self,
        container_name: str,
        prefix: Optional[str],
        marker: Optional[str],
        page_size: int,
    ):
        return await self._call(
            "list_objects",
            lambda: self._backend.list_objects_page(container_name, prefix, marker, page_size),
            retry=True,
            container=container_name,
        )

    async def download_object(
        self,
        container: ContainerRef,
        name: str,
        sink: BinaryIO,
    ) -> ObjectEntry:
        """
        Stream an object into an open binary sink.

        The sink is closed on every exit path.

        Raises:
            NotFoundError: If the container or object does not exist
            TransientError: On interrupted transfer
        """
        try:
            container_name = _container_name(container)
            ObjectNameValidator.validate_raise(name)

            async with self._guard("download_object", container=container_name, object=name):
                entry, chunks = await self._backend.open_object(container_name, name)
                async with aclosing(chunks):
                    async for chunk in chunks:
                        sink.write(chunk)
                        await asyncio.sleep(0)
                sink.flush()
        finally:
            sink.close()

        log_with_context(
            logger, logging.INFO, f"Downloaded '{container_name}/{name}' ({entry.size} bytes)",
            container=container_name, object=name, size=entry.size,
        )
        return entry

    async def read_object(self, container: ContainerRef, name: str) -> bytes:
        """Download an object into memory and return its bytes."""
        sink = _CapturingSink()
        await self.download_object(container, name, sink)
        return sink.captured

    async def delete_object(self, container: ContainerRef, name: str) -> None:
        """
        Delete a single object.

        Raises:
            NotFoundError: If the container or object does not exist
        """
        container_name = _container_name(container)
        ObjectNameValidator.validate_raise(name)
        await self._call(
            "delete_object",
            lambda: self._backend.delete_object(container_name, name),
            container=container_name,
            object=name,
        )
        logger.debug(f"Deleted object '{container_name}/{name}'")
