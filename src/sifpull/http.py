"""Small urllib helpers shared by the library, hub and URL transports."""

from __future__ import annotations

import json
import logging
import os
import socket
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from sifpull import __version__
from sifpull.errors import FilesystemError, NetworkError
from sifpull.interrupt import CancelToken

logger = logging.getLogger(__name__)

USER_AGENT = "sifpull/%s" % __version__
CHUNK_SIZE = 1 << 20


def _build_request(url: str, token: str | None = None) -> Request:
    headers = {"User-Agent": USER_AGENT}
    if token:
        headers["Authorization"] = "Bearer %s" % token
    return Request(url, headers=headers)


def open_url(url: str, *, token: str | None = None, timeout: float | None = None):
    """Open ``url`` for reading.

    Raises:
        NetworkError: On HTTP errors, unreachable hosts or timeouts. The
            HTTP status (if any) is available as ``status`` on the error.
    """
    logger.debug("GET %s", url)
    try:
        return urlopen(_build_request(url, token), timeout=timeout)
    except HTTPError as e:
        raise NetworkError("GET %s failed: HTTP %d" % (url, e.code), status=e.code) from e
    except (URLError, socket.timeout) as e:
        reason = e.reason if isinstance(e, URLError) else e
        raise NetworkError("GET %s failed: %s" % (url, reason)) from e
    except HTTPException as e:
        raise NetworkError("GET %s failed: %r" % (url, e)) from e
    except ValueError as e:
        raise NetworkError("invalid URL %r: %s" % (url, e)) from e


def get_json(url: str, *, token: str | None = None, timeout: float | None = None) -> Any:
    """Fetch and decode a JSON document."""
    with open_url(url, token=token, timeout=timeout) as resp:
        body = resp.read()
    try:
        return json.loads(body)
    except ValueError as e:
        raise NetworkError("invalid JSON from %s: %s" % (url, e)) from e


def _content_length(resp) -> int | None:
    headers = getattr(resp, "headers", None)
    value = headers.get("Content-Length") if headers is not None else None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def stream_to_file(resp, dest: str | os.PathLike, *, cancel: CancelToken | None = None,
                   chunk_size: int = CHUNK_SIZE) -> int:
    """Copy a response body into ``dest``, checking ``cancel`` between chunks.

    A body shorter than the advertised ``Content-Length`` is a failed transfer.

    Returns:
        Number of bytes written.

    Raises:
        NetworkError: If reading fails or the body is truncated.
        FilesystemError: If ``dest`` cannot be written.
    """
    expected = _content_length(resp)
    written = 0
    try:
        with open(dest, "wb") as f:
            while True:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                try:
                    chunk = resp.read(chunk_size)
                except (OSError, socket.timeout, HTTPException) as e:
                    raise NetworkError("transfer interrupted after %d bytes: %s" % (written, e)) from e
                if not chunk:
                    break
                f.write(chunk)
                written += len(chunk)
    except NetworkError:
        raise
    except OSError as e:
        raise FilesystemError("unable to write %s: %s" % (dest, e)) from e
    if expected is not None and written < expected:
        raise NetworkError("transfer truncated: received %d of %d bytes" % (written, expected))
    return written


def download(url: str, dest: str | os.PathLike, *, token: str | None = None,
             timeout: float | None = None, cancel: CancelToken | None = None) -> int:
    """Download ``url`` into ``dest``; returns the number of bytes written."""
    with open_url(url, token=token, timeout=timeout) as resp:
        written = stream_to_file(resp, dest, cancel=cancel)
    logger.debug("Downloaded %d bytes from %s", written, url)
    return written
