"""sidecar init — scaffold a sidecar.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "sidecar.yaml"

TEMPLATE_YAML = """\
# Sidecar worker configuration
name: sidecar

worker:
  # Command that starts the worker.  It must speak line-delimited JSON-RPC
  # on stdin/stdout and keep stdout free of anything else.
  command: node index.js
  # Working directory, relative to this file.
  # cwd: ./worker
  # Extra environment variables (values from .env are merged in).
  # env:
  #   LOG_LEVEL: info

# Seconds each call waits for its response.
call_timeout: 30
# Seconds allowed for the final `shutdown` call before terminating.
shutdown_timeout: 2
# Seconds between SIGTERM and SIGKILL.
terminate_timeout: 3
# Seconds the CLI waits for the worker's `ready` event (0 to skip).
ready_timeout: 10
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing sidecar.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a sidecar.yaml in the current directory."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to point at your worker")
    click.echo("  2. Run `sidecar listen` to watch its events")
    click.echo("  3. Run `sidecar call <method> '<json params>'` to invoke it")
