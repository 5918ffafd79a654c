"""sifpull pull command."""

from __future__ import annotations

import logging

import click

from sifpull.errors import PullError
from ._common import _exit_on_error, _make_registry_credentials, _setup_logging

logger = logging.getLogger(__name__)


@click.command()
@click.argument("args", nargs=-1, required=True, metavar="[DEST] SOURCE")
@click.option("--library", "library_uri", default=None, envvar="SIFPULL_LIBRARY",
              help="The library to pull from (default: https://library.sylabs.io)")
@click.option("--force", "-F", is_flag=True, envvar="SIFPULL_FORCE",
              help="Overwrite an image file if it exists")
@click.option("--allow-unauthenticated", "-U", is_flag=True, envvar="SIFPULL_ALLOW_UNAUTHENTICATED",
              help="Don't check if the container is signed")
@click.option("--name", default=None, hidden=True, envvar="SIFPULL_NAME",
              help="Specify a custom image name")
@click.option("--tmpdir", default=None, hidden=True, envvar="SIFPULL_TMPDIR",
              help="Temporary directory for registry pulls")
@click.option("--nohttps", is_flag=True, envvar="SIFPULL_NOHTTPS",
              help="Do NOT use HTTPS with hub and registry endpoints (local registries)")
@click.option("--docker-username", default=None, envvar="SIFPULL_DOCKER_USERNAME",
              help="Username for registry authentication")
@click.option("--docker-password", default=None, envvar="SIFPULL_DOCKER_PASSWORD",
              help="Password for registry authentication")
@click.option("--docker-login", is_flag=True, envvar="SIFPULL_DOCKER_LOGIN",
              help="Interactively prompt for registry credentials")
@click.pass_context
def pull(
        ctx, args, library_uri, force, allow_unauthenticated, name, tmpdir, nohttps,
        docker_username, docker_password, docker_login,
):
    """Pull an image from a library, hub, URL or registry.

    SOURCE is a reference such as library://alpine:latest, shub://org/project,
    https://example.com/image.sif or docker://ubuntu:20.04. A reference without
    a scheme is pulled from the library. DEST defaults to a name derived from
    SOURCE.

    Examples:

      sifpull pull library://alpine:latest

      sifpull pull my-alpine.sif library://alpine:3.9

      sifpull pull --allow-unauthenticated shub://org/project

      sifpull pull docker://ubuntu:20.04 --docker-login
    """
    from sifpull.bootstrap import init_sifpull
    from sifpull.config import SifpullConfig
    from sifpull.pull import run_pull
    from sifpull.request import PullRequest
    from sifpull.uri import Transport, default_destination_name, resolve_reference

    if len(args) > 2:
        raise click.BadArgumentUsage("expected at most two arguments: [DEST] SOURCE")

    v = init_sifpull()
    # SAF's init_framework_desktop reconfigures the root logger, so re-apply ours
    _setup_logging(ctx.obj["verbose"])
    config = SifpullConfig()

    try:
        reference = resolve_reference(args[-1])
        destination = default_destination_name(args, name)

        credentials = None
        if reference.transport is Transport.OTHER:
            credentials = _make_registry_credentials(docker_username, docker_password, docker_login)

        request = PullRequest(
            reference=reference,
            destination_name=destination,
            overwrite_allowed=force,
            unauthenticated_allowed=allow_unauthenticated,
            library_base_uri=library_uri if library_uri is not None else config.library_uri,
            temp_dir=tmpdir or "",
            https_disabled=nohttps,
            registry_credentials=credentials,
            auth_token=config.library_token(),
        )
        outcome = run_pull(request, config, v=v)
    except PullError as e:
        _exit_on_error(e)
        return

    click.echo("Image saved to %s" % outcome.destination_path)
