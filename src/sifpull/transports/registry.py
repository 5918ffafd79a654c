"""Registry transport: OCI/Docker registry pulls delegated to skopeo.

This is the default transport; every scheme not claimed by another
transport (``docker://``, ``oci://`` ...) ends up here.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from sifpull.errors import NetworkError, PullError
from sifpull.materialize import check_destination
from sifpull.request import PullOutcome, PullRequest, RegistryCredentials
from sifpull.transports.base import PullContext, TransportPlugin
from sifpull.uri import Transport

logger = logging.getLogger(__name__)


def build_copy_cmd(
        command: list[str],
        source: str,
        archive: str | os.PathLike,
        credentials: RegistryCredentials | None = None,
        https_disabled: bool = False,
) -> list[str]:
    """Build the ``skopeo copy`` invocation writing ``source`` to an OCI archive.

    Args:
        command: Base command (e.g. ``["skopeo"]``).
        source: Full reference, e.g. ``"docker://ubuntu:20.04"``.
        archive: Local path for the resulting OCI archive.
        credentials: Optional registry credentials.
        https_disabled: Skip TLS verification / talk plain HTTP to the registry.

    Returns:
        List of command parts suitable for subprocess.
    """
    cmd = list(command) + ["copy"]
    if credentials is not None and credentials.username:
        cmd.extend(["--src-creds", "%s:%s" % (credentials.username, credentials.password)])
    if https_disabled:
        cmd.append("--src-tls-verify=false")
    cmd.extend([source, "oci-archive:%s" % archive])
    return cmd


class RegistryTransport(TransportPlugin):
    """Pull from a container registry into a single archive file."""

    transport_name = "registry"
    transports = (Transport.OTHER,)
    is_default = True

    def pull(self, request: PullRequest, context: PullContext) -> PullOutcome:
        check_destination(request.destination, request.overwrite_allowed)

        def fetch(dest: Path) -> int:
            cmd = build_copy_cmd(
                context.registry_command,
                request.source,
                dest,
                credentials=request.registry_credentials,
                https_disabled=request.https_disabled,
            )
            env = dict(os.environ, TMPDIR=str(dest.parent))
            logger.info("Pulling registry image %s...", request.source)
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, env=env)
            except FileNotFoundError as e:
                raise PullError("%s not found; it is required to pull from registries" % cmd[0]) from e
            if result.returncode != 0:
                raise NetworkError("Failed to pull image %s: %s" % (request.source, result.stderr.strip()[:200]))
            return dest.stat().st_size

        return self.pull_via_tempfile(request, context, fetch, temp_dir=request.temp_dir)
