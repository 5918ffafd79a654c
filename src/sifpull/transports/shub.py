"""Singularity Hub transport.

References look like ``shub://[host/]org/project[:tag]``. The hub API
returns a manifest whose ``image`` field is a direct download URL::

    GET <scheme>://<host>/api/container/<org>/<project>:<tag>  -> {"image": "...", "version": "..."}
"""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlsplit

from sifpull import http
from sifpull.errors import NetworkError, UserInputError
from sifpull.materialize import check_destination
from sifpull.request import PullOutcome, PullRequest
from sifpull.transports.base import PullContext, TransportPlugin
from sifpull.uri import DEFAULT_TAG, Transport

logger = logging.getLogger(__name__)


def manifest_url(locator: str, default_host: str, https_disabled: bool = False) -> str:
    """Build the hub manifest URL for a ``shub://`` locator.

    A leading path component containing a dot is taken as the hub host.

    Examples::

        >>> manifest_url("org/project", "singularity-hub.org")
        'https://singularity-hub.org/api/container/org/project:latest'
        >>> manifest_url("hub.example.com/org/project:v1", "singularity-hub.org", https_disabled=True)
        'http://hub.example.com/api/container/org/project:v1'
    """
    parts = [p for p in locator.strip("/").split("/") if p]
    host = default_host
    if len(parts) > 2 and "." in parts[0]:
        host = parts.pop(0)
    if len(parts) != 2:
        raise UserInputError("shub reference must be org/project[:tag], got %s" % locator)
    if ":" not in parts[-1]:
        parts[-1] = "%s:%s" % (parts[-1], DEFAULT_TAG)
    scheme = "http" if https_disabled else "https"
    return "%s://%s/api/container/%s" % (scheme, host, "/".join(parts))


def image_download_url(manifest_uri: str, manifest) -> str:
    """Return the absolute download URL named by a hub manifest.

    Relative ``image`` values are resolved against the manifest URL.

    Raises:
        NetworkError: If the manifest has no usable http(s) image URL.
    """
    image = manifest.get("image") if isinstance(manifest, dict) else None
    if not image or not isinstance(image, str):
        raise NetworkError("hub manifest %s has no image URL" % manifest_uri)
    image_url = urljoin(manifest_uri, image)
    if urlsplit(image_url).scheme not in ("http", "https"):
        raise NetworkError("hub manifest %s names an unsupported image URL: %s" % (manifest_uri, image))
    return image_url


class ShubTransport(TransportPlugin):
    """Direct download from a Singularity Hub instance."""

    transport_name = "shub"
    transports = (Transport.SHUB,)

    def pull(self, request: PullRequest, context: PullContext) -> PullOutcome:
        check_destination(request.destination, request.overwrite_allowed)

        url = manifest_url(request.reference.locator, context.shub_host, request.https_disabled)
        manifest = http.get_json(url, timeout=context.timeout)
        image_url = image_download_url(url, manifest)
        logger.info("Downloading shub image %s", request.source)

        def fetch(dest):
            return http.download(image_url, dest, timeout=context.timeout, cancel=context.cancel)

        return self.pull_via_tempfile(request, context, fetch)
