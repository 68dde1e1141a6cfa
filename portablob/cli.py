"""
portablob Command-Line Interface

Runs the object store walkthrough against a configured backend.

Author: portablob Contributors
Date: 2025
"""

import sys
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import click
from pydantic import ValidationError as ConfigValidationError

from portablob import __version__
from portablob.client import ObjectStoreClient
from portablob.core.config_manager import BackendType, ConfigManager, PortablobConfig
from portablob.core.logging_config import configure_from
from portablob.exceptions import StorageError
from portablob.workflow import DEFAULT_CONTENT, WalkthroughError, run_walkthrough


@click.group()
@click.version_option(version=__version__, prog_name="portablob")
@click.pass_context
def cli(ctx):
    """
    portablob - vendor-neutral object store client

    Drive containers and objects on an in-memory, filesystem, or Azure backend.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--backend",
    type=click.Choice([t.value for t in BackendType], case_sensitive=False),
    help="Backend to run against (overrides configuration)",
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Root directory for the filesystem backend",
)
@click.option(
    "--data-dir",
    default="./data",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the local source and downloaded files",
    show_default=True,
)
@click.option(
    "--content",
    default=DEFAULT_CONTENT,
    help="Text uploaded as the object",
    show_default=True,
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides configuration)",
)
def walkthrough(
    config: Optional[Path],
    backend: Optional[str],
    root: Optional[Path],
    data_dir: Path,
    content: str,
    log_level: Optional[str],
):
    """
    Run the container lifecycle walkthrough.

    Creates a container, reads and sets its properties and metadata, uploads
    a local file, lists, downloads, verifies, and cleans up.

    Examples:
        portablob walkthrough
        portablob walkthrough --backend filesystem --root ./data/objects
        portablob walkthrough --config portablob.yaml --log-level DEBUG
    """
    overrides: Dict[str, Any] = {}
    if backend:
        overrides.setdefault("backend", {})["type"] = backend.lower()
    if root:
        overrides.setdefault("backend", {})["root"] = str(root)
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()

    try:
        settings = ConfigManager().load(
            config_file=str(config) if config else None,
            cli_overrides=overrides,
        )
    except (ConfigValidationError, ValueError) as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(2)

    configure_from(settings.logging)
    logger = logging.getLogger("portablob.cli")

    click.echo(f"portablob v{__version__} walkthrough ({BackendType(settings.backend.type).value} backend)\n")

    def on_step(step: str, message: str) -> None:
        click.echo(f"[{step}] {message}")

    try:
        report = asyncio.run(_run(settings, data_dir, content, on_step))
    except WalkthroughError as e:
        logger.debug("Walkthrough failed", exc_info=True)
        click.echo(f"\nFailed at step '{e.step}' ({e.kind}): {e.cause}", err=True)
        for failure in e.cleanup_failures:
            click.echo(f"Not released: {failure.resource} ({failure.error_type}): {failure.error}", err=True)
        sys.exit(1)
    except StorageError as e:
        click.echo(f"\nFailed ({e.kind}): {e.message}", err=True)
        sys.exit(1)

    click.echo(f"\nFinished: {len(report.steps)} steps, released {len(report.released)} resource(s).")


async def _run(settings: PortablobConfig, data_dir: Path, content: str, on_step):
    async with ObjectStoreClient.from_config(settings) as client:
        return await run_walkthrough(client, data_dir, content=content, on_step=on_step)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
