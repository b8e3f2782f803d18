"""sidecar call — issue a single RPC to the worker and print the result."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from sidecar.commands.helpers import (
    configure_logging,
    load_or_exit,
    stderr_sink,
    wait_until_ready,
)
from sidecar.config.models import SidecarConfig
from sidecar.errors import SidecarError
from sidecar.supervisor import Supervisor


@click.command()
@click.argument("method")
@click.argument("params", required=False, default="{}")
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds to wait for the response (default: call_timeout).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
def call(
    method: str,
    params: str,
    config_file: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Start the worker, call METHOD with PARAMS (a JSON object), and stop."""
    configure_logging(verbose)

    try:
        parsed = json.loads(params)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc.msg}", param_hint="PARAMS") from None
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object", param_hint="PARAMS")

    config = load_or_exit(config_file)

    try:
        result = asyncio.run(_call(config, method, parsed, timeout, verbose))
    except SidecarError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from None

    click.echo(json.dumps(result, indent=2, ensure_ascii=False))


async def _call(
    config: SidecarConfig,
    method: str,
    params: dict[str, Any],
    timeout: float | None,
    verbose: bool,
) -> Any:
    sidecar = Supervisor(config, on_stderr=stderr_sink(config.name, verbose))
    async with sidecar:
        await wait_until_ready(sidecar)
        return await sidecar.call(method, params, timeout=timeout)
