"""sidecar listen — start the worker and print its events as JSON lines."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any

import click

from sidecar.commands.helpers import configure_logging, load_or_exit, stderr_sink
from sidecar.config.models import SidecarConfig
from sidecar.errors import SidecarError
from sidecar.supervisor import Supervisor


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "-e",
    "--event",
    "event_names",
    multiple=True,
    help="Only print events with this name (repeatable).",
)
@click.option(
    "--duration",
    type=float,
    default=None,
    help="Stop after this many seconds (default: until Ctrl-C or exit).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def listen(
    config_file: str | None,
    event_names: tuple[str, ...],
    duration: float | None,
    verbose: bool,
) -> None:
    """Run the worker and stream its events to stdout."""
    configure_logging(verbose)
    config = load_or_exit(config_file)

    try:
        returncode = asyncio.run(_listen(config, set(event_names), duration, verbose))
    except KeyboardInterrupt:
        click.echo("Interrupted.", err=True)
        return
    except SidecarError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from None

    if returncode is not None:
        click.echo(f"{config.name} exited with code {returncode}", err=True)


async def _listen(
    config: SidecarConfig,
    names: set[str],
    duration: float | None,
    verbose: bool,
) -> int | None:
    """Print events until the worker exits or *duration* elapses.

    Returns the worker's exit code if it exited on its own.
    """

    def _print(name: str, data: Any) -> None:
        if names and name not in names:
            return
        click.echo(json.dumps({"event": name, "data": data}, ensure_ascii=False))

    sidecar = Supervisor(config, on_stderr=stderr_sink(config.name, verbose))
    # Subscribe before start so the ready event is not missed.
    sidecar.subscribe_all(_print)

    async with sidecar:
        closed = asyncio.create_task(sidecar.wait_closed())
        done, _ = await asyncio.wait({closed}, timeout=duration)
        if done:
            return closed.result()
        closed.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await closed
    return None
