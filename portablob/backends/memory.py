"""
In-Memory Object Store Backend

Dictionary-backed emulation of a remote object store for development and
testing.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
import hashlib
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from ..exceptions import (
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ObjectNotFoundError,
)
from ..models import (
    Container,
    ContainerProperties,
    ObjectEntry,
    PublicAccessLevel,
)
from .base import StorageBackend


class _StoredObject:
    """Committed object content plus its entry."""

    __slots__ = ("entry", "content")

    def __init__(self, entry: ObjectEntry, content: bytes):
        self.entry = entry
        self.content = content


class InMemoryBackend(StorageBackend):
    """
    In-memory storage backend for containers and objects.

    Storage structure:
        containers: {container_name: Container}
        objects:    {container_name: {object_name: _StoredObject}}

    A single asyncio lock guards both dictionaries. It is only held for
    short critical sections, never while a payload is being streamed in or
    out, so unrelated transfers proceed concurrently.

    Limitations:
    - Data lost on process restart
    - Memory usage scales with data size
    """

    backend_type = "memory"

    def __init__(self, read_chunk_size: int = 64 * 1024):
        """Initialize in-memory storage."""
        self._containers: Dict[str, Container] = {}
        self._objects: Dict[str, Dict[str, _StoredObject]] = {}
        self._lock = asyncio.Lock()
        self._read_chunk_size = read_chunk_size

    async def create_container(
        self,
        name: str,
        metadata: Optional[Dict[str, str]] = None,
        public_access: PublicAccessLevel = PublicAccessLevel.NONE,
    ) -> Container:
        async with self._lock:
            if name in self._containers:
                raise ContainerAlreadyExistsError(name)

            now = datetime.now(timezone.utc)
            container = Container(
                name=name,
                properties=ContainerProperties(
                    etag=self._generate_etag(),
                    created_on=now,
                    last_modified=now,
                    public_access=public_access,
                ),
                metadata=dict(metadata or {}),
            )

            self._containers[name] = container
            self._objects[name] = {}
            return container.model_copy(deep=True)

    async def get_container(self, name: str) -> Container:
        async with self._lock:
            if name not in self._containers:
                raise ContainerNotFoundError(name)
            return self._containers[name].model_copy(deep=True)

    async def set_container_metadata(
        self,
        name: str,
        metadata: Dict[str, str],
    ) -> Container:
        async with self._lock:
            if name not in self._containers:
                raise ContainerNotFoundError(name)

            container = self._containers[name]

            # Full replace
            container.metadata = dict(metadata)
            container.properties.etag = self._generate_etag()
            container.properties.last_modified = datetime.now(timezone.utc)

            return container.model_copy(deep=True)

    async def delete_container(self, name: str) -> None:
        async with self._lock:
            if name not in self._containers:
                raise ContainerNotFoundError(name)
            del self._containers[name]
            self._objects.pop(name, None)

    async def container_exists(self, name: str) -> bool:
        async with self._lock:
            return name in self._containers

    async def reset(self) -> None:
        """Reset the backend, removing all containers and objects."""
        async with self._lock:
            self._containers.clear()
            self._objects.clear()

    def _generate_etag(self) -> str:
        """Generate a unique ETag."""
        return hashlib.md5(uuid.uuid4().bytes).hexdigest()

    # ============================================================================
    # Object Operations
    # ============================================================================

    async def put_object(
        self,
        container_name: str,
        object_name: str,
        chunks: AsyncIterator[bytes],
        content_type: str = "application/octet-stream",
    ) -> ObjectEntry:
        async with self._lock:
            if container_name not in self._containers:
                raise ContainerNotFoundError(container_name)

        # Stage outside the lock; nothing is visible until commit
        staged = bytearray()
        async for chunk in chunks:
            staged.extend(chunk)
        content = bytes(staged)

        async with self._lock:
            # Container may have been deleted while the payload streamed in
            if container_name not in self._containers:
                raise ContainerNotFoundError(container_name)

            entry = ObjectEntry(
                name=object_name,
                container_name=container_name,
                size=len(content),
                last_modified=datetime.now(timezone.utc),
                etag=hashlib.md5(content).hexdigest(),
                content_type=content_type,
            )
            self._objects[container_name][object_name] = _StoredObject(entry, content)
            return entry.model_copy()

    async def open_object(
        self,
        container_name: str,
        object_name: str,
    ) -> Tuple[ObjectEntry, AsyncIterator[bytes]]:
        async with self._lock:
            stored = self._lookup(container_name, object_name)
            entry = stored.entry.model_copy()
            content = stored.content

        return entry, self._iter_content(content)

    async def _iter_content(self, content: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(content), self._read_chunk_size):
            yield content[offset:offset + self._read_chunk_size]

    async def list_objects_page(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        marker: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[ObjectEntry], Optional[str]]:
        async with self._lock:
            if container_name not in self._containers:
                raise ContainerNotFoundError(container_name)
            entries = [s.entry.model_copy() for s in self._objects[container_name].values()]

        if prefix:
            entries = [e for e in entries if e.name.startswith(prefix)]

        entries.sort(key=lambda e: e.name)

        # Continue after the marker
        if marker:
            entries = [e for e in entries if e.name > marker]

        next_marker = None
        if max_results and len(entries) > max_results:
            entries = entries[:max_results]
            next_marker = entries[-1].name

        return entries, next_marker

    async def delete_object(self, container_name: str, object_name: str) -> None:
        async with self._lock:
            self._lookup(container_name, object_name)
            del self._objects[container_name][object_name]

    def _lookup(self, container_name: str, object_name: str) -> _StoredObject:
        """Find a stored object. Caller must hold the lock."""
        if container_name not in self._containers:
            raise ContainerNotFoundError(container_name)

        objects = self._objects.get(container_name, {})
        if object_name not in objects:
            raise ObjectNotFoundError(container_name, object_name)

        return objects[object_name]
