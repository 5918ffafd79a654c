"""Library transport: cache-backed, hash-verified pulls with a trust check."""

from __future__ import annotations

import logging

from sifpull.errors import FilesystemError
from sifpull.library import LibraryClient, fetch_to_cache
from sifpull.materialize import check_destination, copy_image
from sifpull.request import PullOutcome, PullRequest, TrustDecision
from sifpull.transports.base import PullContext, TransportPlugin
from sifpull.uri import LIBRARY_PROTOCOL, Transport, get_name

logger = logging.getLogger(__name__)


class LibraryTransport(TransportPlugin):
    """Pull from a library API through the content-addressed cache.

    Flow: refuse an existing destination (unless forced) before any network
    call, look up the declared hash, reuse or download-and-verify the cache
    entry, copy it to the destination, then run the trust gate.
    """

    transport_name = "library"
    transports = (Transport.LIBRARY,)

    def pull(self, request: PullRequest, context: PullContext) -> PullOutcome:
        destination = request.destination
        check_destination(destination, request.overwrite_allowed)

        source = request.source
        cache_name = get_name("%s://%s" % (LIBRARY_PROTOCOL, request.reference.locator))

        client = LibraryClient(request.library_base_uri, token=request.auth_token, timeout=context.timeout)
        image = client.get_image(source)
        logger.debug("Library declares %s for %s", image.hash, image.path)

        cache = context.cache
        cache_hit = cache.exists(image.hash, cache_name)
        if cache_hit and context.verify_cache_hits:
            cache_hit = self._audit_cache_hit(context, image.hash, cache_name)

        written = 0
        if cache_hit:
            entry = cache.entry(image.hash, cache_name)
            logger.info("Using cached image %s", entry.local_path)
        else:
            entry, written = fetch_to_cache(client, cache, image, source, cache_name, cancel=context.cancel)

        context.cancel.raise_if_cancelled()
        copy_image(entry.local_path, destination)

        decision = self._check_trust(request, context)
        return PullOutcome(destination, decision, bytes_transferred=written, cache_hit=cache_hit)

    @staticmethod
    def _audit_cache_hit(context: PullContext, content_hash: str, name: str) -> bool:
        entry = context.cache.entry(content_hash, name)
        try:
            valid = entry.verify()
        except OSError as e:
            raise FilesystemError("unable to verify cache entry %s: %s" % (entry.local_path, e)) from e
        if not valid:
            logger.warning("Cached image %s does not match its hash, downloading again", entry.local_path)
            context.cache.evict(content_hash, name)
        return valid

    @staticmethod
    def _check_trust(request: PullRequest, context: PullContext) -> TrustDecision:
        gate = context.trust_gate
        if request.unauthenticated_allowed:
            return gate.skip("unauthenticated pulls allowed")
        if not request.library_base_uri:
            return gate.skip("no library configured to verify against")
        return gate.evaluate(request.destination)
