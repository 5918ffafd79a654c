"""Shared CLI infrastructure: logging setup, credential helpers, decorators."""

from __future__ import annotations

import logging
import sys

import click

from sifpull.errors import PullError
from sifpull.request import RegistryCredentials

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool):
    """Configure logging based on verbosity.

    Uses explicit handler setup instead of ``logging.basicConfig`` which
    is silently a no-op when the root logger already has handlers (SAF
    initialization installs its own).
    """
    level = logging.DEBUG if verbose else logging.INFO
    fmt = ("%(asctime)s [%(levelname)s] %(name)s: %(message)s" if verbose
           else "%(levelname)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(level)
    # Remove any handlers that may have been added by library imports
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))
    root.addHandler(handler)


def _exit_on_error(e: PullError):
    """Report a fatal pull error and terminate with its exit status."""
    click.echo("Error: %s" % e, err=True)
    sys.exit(e.exit_code)


def _make_registry_credentials(
        username: str | None,
        password: str | None,
        login: bool,
) -> RegistryCredentials | None:
    """Build registry credentials from the docker-style CLI options.

    With ``--docker-login`` any missing username or password is prompted
    for interactively; otherwise credentials are only built when at least
    one of them was given.
    """
    if login:
        if not username:
            username = click.prompt("Enter Docker Username", err=True)
        if not password:
            password = click.prompt("Enter Docker Password", hide_input=True, err=True)
        return RegistryCredentials(username=username, password=password, login=True)
    if username or password:
        return RegistryCredentials(username=username or "", password=password or "")
    return None


def dry_run_option(f):
    """Common --dry-run flag."""
    return click.option("--dry-run", "-n", is_flag=True,
                        help="Show what would be done")(f)
