"""
Filesystem Object Store Backend

Emulates an object store on a local directory tree, useful for offline
development and for inspecting stored objects by hand.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
import hashlib
import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from ..exceptions import (
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ObjectNotFoundError,
    TransientError,
)
from ..models import (
    Container,
    ContainerProperties,
    ObjectEntry,
    PublicAccessLevel,
)
from .base import StorageBackend

logger = logging.getLogger(__name__)


class FileSystemBackend(StorageBackend):
    """
    Directory-based object store backend.

    **File Structure**:
    ```
    root/
      <container>/
        container.json          properties + metadata
        objects/
          <sha256(name)>.json          entry (name, size, etag, data_file)
          <sha256(name)>.<uuid>.bin    content version named by data_file
        staging/
          <uuid>.part           in-flight uploads
    ```

    Object files are keyed by the hash of the object name, so any valid
    object name maps to a safe, fixed-length file name.

    **Atomicity**:
    - container.json and entry files are written to a temp file and renamed
    - an overwrite lands in a new content version; rewriting the entry is
      the single switch to it, so readers never pair old size and etag
      with new bytes
    - uploads stream into staging/ and are renamed into objects/ only once
      the payload is complete; a cancelled upload leaves nothing visible
    - deleting a container first renames its directory out of the namespace
    """

    backend_type = "filesystem"

    CONTAINER_FILE = "container.json"
    OBJECTS_DIR = "objects"
    STAGING_DIR = "staging"
    OPEN_ATTEMPTS = 3

    def __init__(self, root: str, read_chunk_size: int = 64 * 1024):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()
        self._read_chunk_size = read_chunk_size

    @property
    def root(self) -> Path:
        return self._root

    # ========== Paths ==========

    def _container_dir(self, name: str) -> Path:
        return self._root / name

    def _container_file(self, name: str) -> Path:
        return self._container_dir(name) / self.CONTAINER_FILE

    def _entry_path(self, container_name: str, object_name: str) -> Path:
        key = hashlib.sha256(object_name.encode("utf-8")).hexdigest()
        return self._container_dir(container_name) / self.OBJECTS_DIR / f"{key}.json"

    def _data_path(self, entry_path: Path, record: Dict[str, Any]) -> Path:
        """Content file the entry record currently points at."""
        return entry_path.with_name(record["data_file"])

    # ========== JSON helpers ==========

    def _write_json(self, path: Path, data: Any) -> None:
        """
        Write JSON to file atomically.

        Uses temp file + rename pattern:
        1. Write to temp file
        2. Flush to disk
        3. Rename temp to target
        """
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")

        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())

            temp_path.replace(path)

        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise TransientError(f"Failed to write {path.name}: {e}") from e

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        """Read JSON from file, returning None if the file does not exist."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise TransientError(f"Failed to read {path.name}: {e}") from e

    def _load_container(self, name: str) -> Container:
        data = self._read_json(self._container_file(name))
        if data is None:
            raise ContainerNotFoundError(name)
        return Container.from_dict(data)

    # ========== Container Operations ==========

    async def create_container(
        self,
        name: str,
        metadata: Optional[Dict[str, str]] = None,
        public_access: PublicAccessLevel = PublicAccessLevel.NONE,
    ) -> Container:
        async with self._write_lock:
            container_dir = self._container_dir(name)
            try:
                container_dir.mkdir()
            except FileExistsError:
                raise ContainerAlreadyExistsError(name)
            except OSError as e:
                raise TransientError(f"Failed to create container directory: {e}") from e

            (container_dir / self.OBJECTS_DIR).mkdir()
            (container_dir / self.STAGING_DIR).mkdir()

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
            self._write_json(self._container_file(name), container.to_dict())
            return container

    async def get_container(self, name: str) -> Container:
        return self._load_container(name)

    async def set_container_metadata(
        self,
        name: str,
        metadata: Dict[str, str],
    ) -> Container:
        async with self._write_lock:
            container = self._load_container(name)
            container.metadata = dict(metadata)
            container.properties.etag = self._generate_etag()
            container.properties.last_modified = datetime.now(timezone.utc)
            self._write_json(self._container_file(name), container.to_dict())
            return container

    async def delete_container(self, name: str) -> None:
        async with self._write_lock:
            if not self._container_file(name).exists():
                raise ContainerNotFoundError(name)

            # Leave the namespace first, then reclaim space
            trash = self._root / f".deleted-{name}-{uuid.uuid4().hex}"
            try:
                self._container_dir(name).rename(trash)
                shutil.rmtree(trash)
            except OSError as e:
                raise TransientError(f"Failed to delete container '{name}': {e}") from e

    def _generate_etag(self) -> str:
        """Generate a unique ETag."""
        return hashlib.md5(uuid.uuid4().bytes).hexdigest()

    # ========== Object Operations ==========

    async def put_object(
        self,
        container_name: str,
        object_name: str,
        chunks: AsyncIterator[bytes],
        content_type: str = "application/octet-stream",
    ) -> ObjectEntry:
        self._load_container(container_name)

        staging_path = (
            self._container_dir(container_name) / self.STAGING_DIR / f"{uuid.uuid4().hex}.part"
        )
        digest = hashlib.md5()
        size = 0

        try:
            with open(staging_path, 'wb') as staged:
                async for chunk in chunks:
                    staged.write(chunk)
                    digest.update(chunk)
                    size += len(chunk)
                staged.flush()
                os.fsync(staged.fileno())

            async with self._write_lock:
                # Container may have been deleted while the payload streamed in
                if not self._container_file(container_name).exists():
                    raise ContainerNotFoundError(container_name)

                entry = ObjectEntry(
                    name=object_name,
                    container_name=container_name,
                    size=size,
                    last_modified=datetime.now(timezone.utc),
                    etag=digest.hexdigest(),
                    content_type=content_type,
                )
                entry_path = self._entry_path(container_name, object_name)
                previous = self._read_json(entry_path)
                record = {
                    **entry.to_dict(),
                    "data_file": f"{entry_path.stem}.{uuid.uuid4().hex}.bin",
                }
                data_path = self._data_path(entry_path, record)

                # The new version stays unreferenced until the entry is rewritten
                staging_path.replace(data_path)
                try:
                    self._write_json(entry_path, record)
                except TransientError:
                    data_path.unlink(missing_ok=True)
                    raise

                if previous is not None:
                    self._retire(self._data_path(entry_path, previous))
                return entry

        except FileNotFoundError as e:
            # Staging directory vanished with the container
            raise ContainerNotFoundError(container_name) from e
        except OSError as e:
            raise TransientError(f"Failed to store object '{object_name}': {e}") from e
        finally:
            if staging_path.exists():
                staging_path.unlink()

    async def open_object(
        self,
        container_name: str,
        object_name: str,
    ) -> Tuple[ObjectEntry, AsyncIterator[bytes]]:
        self._load_container(container_name)

        entry_path = self._entry_path(container_name, object_name)

        # An overwrite may retire the version between reading the entry and opening it
        for _ in range(self.OPEN_ATTEMPTS):
            record = self._read_json(entry_path)
            if record is None:
                raise ObjectNotFoundError(container_name, object_name)

            try:
                handle = open(self._data_path(entry_path, record), 'rb')
            except FileNotFoundError:
                continue
            except OSError as e:
                raise TransientError(f"Failed to open object '{object_name}': {e}") from e

            return ObjectEntry.from_dict(record), self._iter_file(handle)

        raise TransientError(
            f"Object '{object_name}' kept changing while being opened",
            details={"container": container_name, "object": object_name},
        )

    def _retire(self, data_path: Path) -> None:
        """Remove a superseded content version."""
        try:
            data_path.unlink(missing_ok=True)
        except OSError as e:
            # The new version is already committed; an orphan only costs space
            logger.warning(f"Could not remove superseded content {data_path.name}: {e}")

    async def _iter_file(self, handle) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = handle.read(self._read_chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def list_objects_page(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        marker: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> Tuple[List[ObjectEntry], Optional[str]]:
        self._load_container(container_name)

        objects_dir = self._container_dir(container_name) / self.OBJECTS_DIR
        entries: List[ObjectEntry] = []
        try:
            entry_files = list(objects_dir.glob("*.json"))
        except OSError as e:
            raise TransientError(f"Failed to list container '{container_name}': {e}") from e

        for entry_file in entry_files:
            data = self._read_json(entry_file)
            if data is None:
                # Deleted between glob and read
                continue
            entries.append(ObjectEntry.from_dict(data))

        if prefix:
            entries = [e for e in entries if e.name.startswith(prefix)]

        entries.sort(key=lambda e: e.name)

        if marker:
            entries = [e for e in entries if e.name > marker]

        next_marker = None
        if max_results and len(entries) > max_results:
            entries = entries[:max_results]
            next_marker = entries[-1].name

        return entries, next_marker

    async def delete_object(self, container_name: str, object_name: str) -> None:
        async with self._write_lock:
            self._load_container(container_name)

            entry_path = self._entry_path(container_name, object_name)
            record = self._read_json(entry_path)
            if record is None:
                raise ObjectNotFoundError(container_name, object_name)

            # Entry first, so no reader can resolve the content afterwards
            try:
                entry_path.unlink()
                self._data_path(entry_path, record).unlink(missing_ok=True)
            except OSError as e:
                raise TransientError(f"Failed to delete object '{object_name}': {e}") from e
