"""
Object Store Walkthrough

Runs the full container lifecycle against any backend, one step after
another: create a container, inspect and tag it, upload a local file, list,
download, verify, and clean up. The first failing step aborts the run and is
reported with its error kind; resources created so far are always released,
and any that could not be released are reported alongside the failure.

Author: Ayodele Oladeji
Date: 2025
"""

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .cleanup import ResourceScope
from .client import ObjectStoreClient
from .core.logging_config import bind_run_id
from .exceptions import CleanupError, ReleaseFailure, TransientError, error_kind
from .models import ContainerProperties

logger = logging.getLogger(__name__)

DEFAULT_CONTENT = "Hello, World!"
DEFAULT_CONTAINER_PREFIX = "wtblob"
DEFAULT_FILE_PREFIX = "wtfile"
DOWNLOAD_SUFFIX = "DOWNLOADED"
DEFAULT_METADATA = {"docType": "textDocuments", "category": "guidance"}

StepObserver = Callable[[str, str], None]


class WalkthroughError(Exception):
    """
    A walkthrough step failed.

    Attributes:
        step: Name of the failing step ("cleanup" if only release failed)
        cause: The underlying exception
        kind: Error kind of the cause
        cleanup_failures: Resources that could not be released afterwards
    """

    def __init__(
        self,
        step: str,
        cause: BaseException,
        cleanup_failures: Optional[List[ReleaseFailure]] = None,
    ):
        self.step = step
        self.cause = cause
        self.kind = error_kind(cause)
        self.cleanup_failures: List[ReleaseFailure] = list(cleanup_failures or [])
        super().__init__(f"Step '{step}' failed ({self.kind}): {cause}")


@dataclass
class WalkthroughReport:
    """What a completed walkthrough did."""

    container_name: str
    object_name: str
    local_path: Path
    download_path: Path
    properties: Optional[ContainerProperties] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    listed: List[str] = field(default_factory=list)
    downloaded: bytes = b""
    steps: List[str] = field(default_factory=list)
    released: List[str] = field(default_factory=list)


def unique_name(prefix: str) -> str:
    """Append a random suffix to avoid collisions with earlier runs."""
    return f"{prefix}{uuid.uuid4()}"


@asynccontextmanager
async def _step(name: str):
    try:
        yield
    except WalkthroughError:
        raise
    except Exception as e:
        logger.error(f"Walkthrough aborted at '{name}': {e}")
        raise WalkthroughError(name, e) from e


async def run_walkthrough(
    client: ObjectStoreClient,
    data_dir: Union[str, Path],
    *,
    content: str = DEFAULT_CONTENT,
    container_prefix: str = DEFAULT_CONTAINER_PREFIX,
    metadata: Optional[Dict[str, str]] = None,
    on_step: Optional[StepObserver] = None,
) -> WalkthroughReport:
    """
    Run the lifecycle walkthrough.

    Args:
        client: Client bound to the target backend
        data_dir: Directory for the local source and downloaded files
        content: Text written to the local file and uploaded
        container_prefix: Prefix for the generated container name
        metadata: Metadata set on the container (defaults to DEFAULT_METADATA)
        on_step: Optional callback receiving (step, message) after each step

    Returns:
        Report of the completed run

    Raises:
        WalkthroughError: On the first failing step, or on cleanup failure.
            Release failures that follow a failed step are attached as
            ``cleanup_failures``.
    """
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    file_name = f"{unique_name(DEFAULT_FILE_PREFIX)}.txt"
    report = WalkthroughReport(
        container_name=unique_name(container_prefix),
        object_name=file_name,
        local_path=data_dir / file_name,
        download_path=data_dir / file_name.replace(".txt", f"{DOWNLOAD_SUFFIX}.txt"),
    )

    def notify(step: str, message: str) -> None:
        report.steps.append(step)
        logger.info(f"[{step}] {message}")
        if on_step:
            on_step(step, message)

    scope = ResourceScope("walkthrough")
    with bind_run_id(report.container_name):
        try:
            async with scope:
                await _run_steps(client, scope, report, content.encode("utf-8"), metadata, notify)
        except CleanupError as e:
            raise WalkthroughError("cleanup", e, e.failures) from e
        except WalkthroughError as e:
            e.cleanup_failures.extend(scope.failures)
            raise
        finally:
            report.released = list(scope.released)

        notify("cleanup", "Deleted the container and the local files.")
    return report


async def _run_steps(
    client: ObjectStoreClient,
    scope: ResourceScope,
    report: WalkthroughReport,
    payload: bytes,
    metadata: Optional[Dict[str, str]],
    notify: StepObserver,
) -> None:
    container = report.container_name

    async with _step("create_container"):
        await client.create_container(container)
        scope.add_container(client, container)
    notify("create_container", f"A container named '{container}' has been created.")

    async with _step("get_properties"):
        report.properties = await client.get_properties(container)
    notify(
        "get_properties",
        f"Public access: {report.properties.public_access.value}, "
        f"last modified: {report.properties.last_modified.isoformat()}",
    )

    async with _step("set_metadata"):
        await client.set_metadata(container, metadata or DEFAULT_METADATA)
    notify("set_metadata", "Container metadata replaced.")

    async with _step("get_metadata"):
        report.metadata = await client.get_metadata(container)
    notify(
        "get_metadata",
        ", ".join(f"{k}={v}" for k, v in sorted(report.metadata.items())) or "(none)",
    )

    async with _step("write_local_file"):
        scope.add_path(report.local_path)
        report.local_path.write_bytes(payload)
    notify("write_local_file", f"Wrote {report.local_path}")

    async with _step("upload_object"):
        await client.upload_object(container, report.object_name, open(report.local_path, "rb"))
    notify("upload_object", f"Uploaded '{report.object_name}' to '{container}'.")

    async with _step("list_objects"):
        report.listed = await client.list_objects(container).names()
    notify("list_objects", "\n".join(f"\t{name}" for name in report.listed))

    async with _step("download_object"):
        scope.add_path(report.download_path)
        await client.download_object(container, report.object_name, open(report.download_path, "wb"))
    notify("download_object", f"Downloaded to {report.download_path}")

    async with _step("verify_download"):
        report.downloaded = report.download_path.read_bytes()
        if report.downloaded != payload:
            raise TransientError(
                "Downloaded content differs from uploaded content",
                details={"expected": len(payload), "actual": len(report.downloaded)},
            )
    notify("verify_download", "Downloaded content matches the source file.")
