"""Shared helpers for sidecar CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from sidecar.config.models import SidecarConfig
from sidecar.config.parser import ConfigError, load_config
from sidecar.constants import LineSink
from sidecar.supervisor import Supervisor

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def load_or_exit(config_file: str | None) -> SidecarConfig:
    """Load the config, printing the error and exiting 1 on failure."""
    try:
        return load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from None


def stderr_sink(name: str, verbose: bool) -> LineSink | None:
    """Echo worker stderr in verbose mode; otherwise leave it to logging."""
    if not verbose:
        return None

    def _echo(line: str) -> None:
        click.echo(f"[{name} stderr] {line}", err=True)

    return _echo


async def wait_until_ready(sidecar: Supervisor) -> None:
    """Wait for the worker's ready event if the config asks for it.

    A worker that never announces itself is still usable, so a timeout
    only produces a warning.
    """
    timeout = sidecar.config.ready_timeout
    if timeout <= 0:
        return
    try:
        info = await sidecar.wait_ready(timeout)
    except TimeoutError:
        click.echo(
            f"Warning: no ready event from {sidecar.config.name} within {timeout:g}s",
            err=True,
        )
        return
    logger.debug("worker ready: %s", info)
