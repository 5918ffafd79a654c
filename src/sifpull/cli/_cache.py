"""sifpull cache commands."""

from __future__ import annotations

import logging
import sys

import click

from sifpull.errors import PullError
from ._common import _exit_on_error, dry_run_option

logger = logging.getLogger(__name__)


def _get_cache():
    from sifpull.cache import LibraryCache
    from sifpull.config import SifpullConfig
    return LibraryCache(SifpullConfig().cache_dir)


@click.group()
def cache():
    """Inspect and manage the library image cache."""


@cache.command("list")
def cache_list():
    """List cached library images."""
    from sifpull.utils.cli_formatters import format_cache_table

    click.echo(format_cache_table(_get_cache().entries()))


@cache.command("verify")
def cache_verify():
    """Re-hash every cached image and evict the ones that no longer match."""
    lib_cache = _get_cache()
    entries = lib_cache.entries()
    evicted = 0
    try:
        for entry in entries:
            if entry.verify():
                continue
            click.echo("Corrupt: %s" % entry.local_path, err=True)
            lib_cache.evict(entry.content_hash, entry.logical_name)
            evicted += 1
    except PullError as e:
        _exit_on_error(e)
    except OSError as e:
        click.echo("Error: %s" % e, err=True)
        sys.exit(1)

    click.echo("Checked %d cached image(s), evicted %d." % (len(entries), evicted))
    if evicted:
        sys.exit(1)


@cache.command("clean")
@dry_run_option
def cache_clean(dry_run):
    """Remove all cached library images."""
    lib_cache = _get_cache()
    if dry_run:
        for entry in lib_cache.entries():
            click.echo("[dry-run] Would remove %s" % entry.local_path)
        return
    try:
        removed = lib_cache.clean()
    except PullError as e:
        _exit_on_error(e)
        return
    click.echo("Removed %d cached image(s) from %s" % (removed, lib_cache.library_dir))
