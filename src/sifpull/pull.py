"""Pull orchestration: dispatch a request to its transport under the interrupt guard."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sifpull.bootstrap import get_transport
from sifpull.cache import LibraryCache
from sifpull.interrupt import CancelToken, InterruptGuard
from sifpull.request import PullOutcome, PullRequest
from sifpull.signing import CommandVerifier, SignatureVerifier, TrustGate, TrustPrompt
from sifpull.transports.base import PullContext

if TYPE_CHECKING:
    from scitrera_app_framework import Variables

    from sifpull.config import SifpullConfig

logger = logging.getLogger(__name__)


def build_context(
        config: SifpullConfig,
        cancel: CancelToken | None = None,
        prompt: TrustPrompt | None = None,
        verifier: SignatureVerifier | None = None,
        token: str | None = None,
) -> PullContext:
    """Assemble the collaborators a pull needs from user configuration.

    Args:
        config: Loaded user configuration.
        cancel: Cancellation token, normally the interrupt guard's.
        prompt: Trust prompt override (stdin when None).
        verifier: Signature collaborator override (verify command when None).
        token: Library token handed to the verify command.
    """
    if verifier is None:
        verifier = CommandVerifier(config.verify_command, config.keyserver_uri, token=token,
                                   timeout=config.network_timeout)
    gate = TrustGate(verifier, prompt=prompt, fail_closed=config.verify_fail_closed)
    return PullContext(
        cache=LibraryCache(config.cache_dir),
        trust_gate=gate,
        cancel=cancel or CancelToken(),
        timeout=config.network_timeout,
        verify_cache_hits=config.verify_cache_hits,
        shub_host=config.shub_host,
        registry_command=config.registry_command,
    )


def pull(request: PullRequest, context: PullContext, v: Variables | None = None) -> PullOutcome:
    """Route ``request`` to exactly one transport and run it."""
    transport = get_transport(request.reference.transport, v)
    logger.debug("Dispatching %s to %s transport", request.source, transport.transport_name)
    return transport.pull(request, context)


def run_pull(
        request: PullRequest,
        config: SifpullConfig,
        prompt: TrustPrompt | None = None,
        verifier: SignatureVerifier | None = None,
        v: Variables | None = None,
) -> PullOutcome:
    """Run a complete pull with the interrupt guard active throughout.

    Raises:
        PullError: Any fatal failure; ``exit_code`` gives the process status.
    """
    guard = InterruptGuard(request.destination, keep_existing=not request.overwrite_allowed)
    with guard:
        context = build_context(config, guard.token, prompt=prompt, verifier=verifier, token=request.auth_token)
        outcome = pull(request, context, v)
    logger.debug("Pulled %s to %s (%s)", request.source, outcome.destination_path, outcome.trust_decision.value)
    return outcome
