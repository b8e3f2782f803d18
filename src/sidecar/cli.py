"""Root CLI group and version flag."""

import signal

import click

# Keep writing to a closed stdout pipe (e.g. `sidecar listen | head`) from
# killing the process before the worker is shut down.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from sidecar import __version__
from sidecar.commands.call import call
from sidecar.commands.init import init
from sidecar.commands.listen import listen


@click.group()
@click.version_option(version=__version__, prog_name="sidecar")
def cli() -> None:
    """Sidecar — supervise a worker process and talk to it over JSON-RPC."""


cli.add_command(init)
cli.add_command(call)
cli.add_command(listen)
