"""
Scoped resource release.

ResourceScope registers containers, local files, and arbitrary release
callbacks and releases them in reverse order on every exit path. Resources
that are already gone count as released; every other release failure is
collected and reported.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, List, Tuple, Union

from .exceptions import CleanupError, NotFoundError, ReleaseFailure

if TYPE_CHECKING:
    from .client import ContainerRef, ObjectStoreClient

logger = logging.getLogger(__name__)

ReleaseFunc = Callable[[], Awaitable[None]]


class ResourceScope:
    """
    Async context manager guaranteeing release of acquired resources.

    Usage:
        async with ResourceScope() as scope:
            container = await client.create_container(name)
            scope.add_container(client, container)
            ...
        # container deleted here, even if the body raised

    On exit:
    - releases run last-registered first
    - NotFoundError / FileNotFoundError mean "already released"
    - other failures are collected in ``failures``
    - if the body succeeded and something failed to release, CleanupError
      is raised; if the body raised, its exception wins and the release
      failures are logged
    """

    def __init__(self, name: str = "scope"):
        self.name = name
        self._releases: List[Tuple[str, ReleaseFunc]] = []
        self.released: List[str] = []
        self.failures: List[ReleaseFailure] = []

    def add_callback(self, resource: str, release: ReleaseFunc) -> None:
        """Register an async release callback under a descriptive name."""
        self._releases.append((resource, release))

    def add_container(self, client: "ObjectStoreClient", container: "ContainerRef") -> None:
        """Register a container for deletion."""
        name = getattr(container, "name", container)

        async def release() -> None:
            await client.delete_container(name)

        self.add_callback(f"container:{name}", release)

    def add_path(self, path: Union[str, Path]) -> None:
        """Register a local file for deletion."""
        path = Path(path)

        async def release() -> None:
            path.unlink()

        self.add_callback(f"file:{path}", release)

    @property
    def pending(self) -> List[str]:
        """Resources registered but not yet released."""
        return [resource for resource, _ in self._releases]

    async def release(self) -> List[ReleaseFailure]:
        """
        Release every registered resource, newest first.

        Returns:
            Failures recorded during this call
        """
        failures: List[ReleaseFailure] = []

        while self._releases:
            resource, release = self._releases.pop()
            try:
                await release()
            except (NotFoundError, FileNotFoundError):
                logger.debug(f"[{self.name}] {resource} already released")
            except Exception as e:
                logger.warning(f"[{self.name}] failed to release {resource}: {e}")
                failures.append(ReleaseFailure(resource, e))
                continue
            self.released.append(resource)

        self.failures.extend(failures)
        return failures

    async def __aenter__(self) -> "ResourceScope":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        failures = await self.release()

        if failures:
            if exc_val is None:
                raise CleanupError(failures)
            logger.error(
                f"[{self.name}] {len(failures)} resource(s) not released after "
                f"{exc_type.__name__}: {', '.join(f.resource for f in failures)}"
            )

        return False
