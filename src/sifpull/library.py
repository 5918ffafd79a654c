"""Library API client and cache-backed downloader.

Library references look like ``library://[entity/[collection/]]container[:tag]``.
Short forms are expanded against the default entity and collection::

    >>> library_path("alpine:latest")
    'library/default/alpine:latest'
    >>> library_path("sylabs/tests/busybox")
    'sylabs/tests/busybox:latest'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sifpull import http
from sifpull.cache import CacheEntry, LibraryCache, image_hash
from sifpull.errors import FilesystemError, IntegrityMismatchError, NetworkError, UserInputError
from sifpull.interrupt import CancelToken
from sifpull.uri import DEFAULT_TAG, LIBRARY_PROTOCOL, split

logger = logging.getLogger(__name__)

DEFAULT_ENTITY = "library"
DEFAULT_COLLECTION = "default"


def library_path(ref: str) -> str:
    """Normalize a library reference to ``entity/collection/container:tag``.

    Accepts the reference with or without the ``library://`` prefix.

    Raises:
        UserInputError: If the reference has too many path components.
    """
    scheme, locator = split(ref)
    if scheme not in ("", LIBRARY_PROTOCOL):
        raise UserInputError("not a library reference: %s" % ref)
    parts = [p for p in locator.strip("/").split("/") if p]
    if not parts or len(parts) > 3:
        raise UserInputError("invalid library reference: %s" % ref)
    if len(parts) == 1:
        parts = [DEFAULT_ENTITY, DEFAULT_COLLECTION] + parts
    elif len(parts) == 2:
        parts = [parts[0], DEFAULT_COLLECTION, parts[1]]
    if ":" not in parts[-1]:
        parts[-1] = "%s:%s" % (parts[-1], DEFAULT_TAG)
    return "/".join(parts)


@dataclass(frozen=True)
class LibraryImage:
    """Remote metadata for one library image."""

    path: str
    hash: str
    size: int = 0


class LibraryClient:
    """Minimal client for the library API.

    Endpoints:
      - GET /v1/images/<entity>/<collection>/<container>:<tag>  -> {"data": {"hash": ..., "size": ...}}
      - GET /v1/imagefile/<entity>/<collection>/<container>:<tag>  -> image bytes
    """

    def __init__(self, base_uri: str, token: str | None = None, timeout: float | None = None):
        self.base_uri = base_uri.rstrip("/")
        self.token = (token or "").strip() or None
        self.timeout = timeout

    def get_image(self, ref: str) -> LibraryImage:
        """Look up image metadata, including the content hash to expect.

        Raises:
            NetworkError: If the lookup fails or the image does not exist.
        """
        path = library_path(ref)
        try:
            data = http.get_json("%s/v1/images/%s" % (self.base_uri, path), token=self.token, timeout=self.timeout)
        except NetworkError as e:
            if e.status == 404:
                raise NetworkError("image does not exist in the library: %s" % path, status=404) from e
            raise
        meta = data.get("data") if isinstance(data, dict) else None
        if not isinstance(meta, dict) or not meta.get("hash"):
            raise NetworkError("library response for %s is missing the image hash" % path)
        try:
            size = int(meta.get("size") or 0)
        except (TypeError, ValueError) as e:
            raise NetworkError("library response for %s has an invalid size: %r" % (path, meta.get("size"))) from e
        return LibraryImage(path=path, hash=str(meta["hash"]), size=size)

    def download_image(self, dest: str | Path, ref: str, cancel: CancelToken | None = None) -> int:
        """Stream the image bytes into ``dest``; returns bytes written."""
        path = library_path(ref)
        return http.download("%s/v1/imagefile/%s" % (self.base_uri, path), dest,
                             token=self.token, timeout=self.timeout, cancel=cancel)


def fetch_to_cache(client: LibraryClient, cache: LibraryCache, image: LibraryImage, ref: str,
                   name: str, cancel: CancelToken | None = None) -> tuple[CacheEntry, int]:
    """Download an image into the cache and verify it against ``image.hash``.

    The bytes land in a staging file that is only published under the final
    cache name after the recomputed hash matches the one the library declared
    before the transfer. On any failure the staging file is removed, so no
    entry for ``image.hash`` is left behind.

    Returns:
        The published cache entry and the number of bytes transferred.

    Raises:
        IntegrityMismatchError: If the downloaded bytes hash differently.
    """
    staged = cache.staging_path(image.hash, name)
    try:
        logger.info("Downloading library image")
        written = client.download_image(staged, ref, cancel=cancel)
        try:
            actual = image_hash(staged)
        except OSError as e:
            raise FilesystemError("Error getting image hash of %s: %s" % (staged, e)) from e
        if actual != image.hash:
            raise IntegrityMismatchError(expected=image.hash, actual=actual)
        entry = cache.publish(staged, image.hash, name)
    finally:
        staged.unlink(missing_ok=True)
        try:
            staged.parent.rmdir()
        except OSError:
            pass  # still holds the published entry or other downloads
    return entry, written
