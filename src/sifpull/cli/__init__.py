"""sifpull CLI: pull container images with cache reuse and signature checks."""

from __future__ import annotations

import click

from sifpull import __version__
from ._cache import cache
from ._common import _setup_logging
from ._pull import pull


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose/debug output")
@click.version_option(__version__, prog_name="sifpull")
@click.pass_context
def main(ctx, verbose):
    """sifpull: pull container images from libraries, hubs, URLs and registries."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# Register command groups and commands
main.add_command(pull)
main.add_command(cache)
