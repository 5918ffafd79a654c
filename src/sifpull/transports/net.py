"""Plain HTTP(S) transport: the reference is the download URL."""

from __future__ import annotations

import logging

from sifpull import http
from sifpull.materialize import check_destination
from sifpull.request import PullOutcome, PullRequest
from sifpull.transports.base import PullContext, TransportPlugin
from sifpull.uri import Transport

logger = logging.getLogger(__name__)


class NetTransport(TransportPlugin):
    """Download an image file from an http:// or https:// URL."""

    transport_name = "net"
    transports = (Transport.HTTP, Transport.HTTPS)

    def pull(self, request: PullRequest, context: PullContext) -> PullOutcome:
        check_destination(request.destination, request.overwrite_allowed)
        logger.info("Downloading network image %s", request.source)

        def fetch(dest):
            return http.download(request.source, dest, timeout=context.timeout, cancel=context.cancel)

        return self.pull_via_tempfile(request, context, fetch)
