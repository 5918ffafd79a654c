"""Base class for sifpull transports."""

from __future__ import annotations

import logging
import shutil
import tempfile
from abc import abstractmethod
from dataclasses import dataclass, field
from logging import Logger
from pathlib import Path
from typing import Callable

from scitrera_app_framework import Plugin, Variables

from sifpull.cache import LibraryCache
from sifpull.config import DEFAULT_REGISTRY_COMMAND, DEFAULT_SHUB_HOST
from sifpull.errors import FilesystemError, PullInterruptedError
from sifpull.interrupt import CancelToken
from sifpull.materialize import copy_image
from sifpull.request import PullOutcome, PullRequest
from sifpull.signing import TrustGate
from sifpull.uri import Transport

logger = logging.getLogger(__name__)

EXT_TRANSPORT = "sifpull.transport"


def _remove_scratch(scratch: Path):
    try:
        shutil.rmtree(scratch, ignore_errors=True)
    except PullInterruptedError:
        # a termination request cut the removal short; finish it before aborting
        shutil.rmtree(scratch, ignore_errors=True)
        raise


@dataclass
class PullContext:
    """Collaborators and settings shared by every transport for one pull."""

    cache: LibraryCache
    trust_gate: TrustGate
    cancel: CancelToken = field(default_factory=CancelToken)
    timeout: float | None = None
    verify_cache_hits: bool = False
    shub_host: str = DEFAULT_SHUB_HOST
    registry_command: list[str] = field(default_factory=lambda: list(DEFAULT_REGISTRY_COMMAND))


class TransportPlugin(Plugin):
    """Abstract base class for sifpull transports.

    Each transport is an SAF Plugin that registers as a multi-extension
    under the 'sifpull.transport' extension point. The dispatcher picks the
    plugin whose ``transports`` contains the reference's transport, falling
    back to the plugin flagged ``is_default``.

    Subclasses must define:
        - transport_name: str identifier (e.g. "library", "shub")
        - transports: the Transport variants handled
        - pull(): fetch the image and write the destination file
    """

    eager = False  # don't initialize until requested

    # --- Subclass must define ---
    transport_name: str = ""
    transports: tuple[Transport, ...] = ()
    is_default: bool = False

    # --- SAF Plugin interface ---

    def name(self) -> str:
        return "sifpull.transport.%s" % self.transport_name

    def extension_point_name(self, v: Variables) -> str:
        return EXT_TRANSPORT

    def is_enabled(self, v: Variables) -> bool:
        # Must return False for multi-extension plugins to prevent SAF's
        # single-extension cache (er[ext_name]) from short-circuiting
        # subsequent plugin initializations under the same extension point.
        return False

    def is_multi_extension(self, v: Variables) -> bool:
        return True

    def initialize(self, v: Variables, logger: Logger) -> TransportPlugin:
        return self

    # --- Transport interface ---

    def handles(self, transport: Transport) -> bool:
        return transport in self.transports

    @abstractmethod
    def pull(self, request: PullRequest, context: PullContext) -> PullOutcome:
        """Fetch ``request.reference`` and write ``request.destination``.

        Args:
            request: The immutable pull request.
            context: Cache, trust gate, cancellation token and settings.

        Returns:
            The outcome of a successful pull.
        """
        ...

    def pull_via_tempfile(
            self,
            request: PullRequest,
            context: PullContext,
            fetch: Callable[[Path], int],
            temp_dir: str | None = None,
    ) -> PullOutcome:
        """Run ``fetch`` into a scratch file, then copy it to the destination.

        Used by transports that download directly rather than through the
        library cache. These sources carry no signatures, so the trust gate
        is skipped.

        Args:
            request: The pull request.
            context: Shared pull context.
            fetch: Callable writing the image to the given path; returns bytes written.
            temp_dir: Parent for the scratch directory (system default if None).
        """
        try:
            scratch = Path(tempfile.mkdtemp(prefix="sifpull-", dir=temp_dir or None))
        except OSError as e:
            raise FilesystemError("unable to create temporary directory in %s: %s" % (temp_dir, e)) from e
        try:
            written = fetch(scratch / "image")
            context.cancel.raise_if_cancelled()
            copy_image(scratch / "image", request.destination)
        finally:
            _remove_scratch(scratch)
        decision = context.trust_gate.skip(
            "%s images do not support signature verification" % self.transport_name, warn=False,
        )
        return PullOutcome(request.destination, decision, bytes_transferred=written)
