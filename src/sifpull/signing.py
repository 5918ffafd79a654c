"""Signature checks and the interactive trust gate.

The cryptographic verification itself is delegated to an external command
(``singularity verify`` by default); only its signed / unsigned / error
outcome matters here. When an image is not signed the operator is asked
whether to keep it, and a declined image is deleted.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Protocol

import click

from sifpull.errors import ImageCleanupError, PullError, TrustDeclinedError, UserInputError, VerificationError
from sifpull.request import TrustDecision

logger = logging.getLogger(__name__)

PROMPT_TEXT = "Do you wish to proceed? [N/y] "

# Output fragments the verify command prints for images without signatures.
UNSIGNED_MARKERS = (
    "no signatures found",
    "no signature found",
    "not signed",
    "signature not found",
)

TrustPrompt = Callable[[str], bool]


class SignatureVerifier(Protocol):
    def is_signed(self, path: str | os.PathLike) -> bool:
        """Return True if signed and valid, False if unsigned.

        Raises:
            VerificationError: If the check itself could not be completed.
        """
        ...


class CommandVerifier:
    """Run an external verify command against an image file."""

    def __init__(self, command: list[str], keyserver_uri: str, token: str | None = None,
                 timeout: float | None = None):
        self.command = list(command)
        self.keyserver_uri = keyserver_uri
        self.token = token
        self.timeout = timeout

    def build_cmd(self, path: str | os.PathLike) -> list[str]:
        return self.command + ["--url", self.keyserver_uri, str(path)]

    def is_signed(self, path: str | os.PathLike) -> bool:
        cmd = self.build_cmd(path)
        env = None
        if self.token:
            env = dict(os.environ, SYLABS_TOKEN=self.token)
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=self.timeout)
        except FileNotFoundError as e:
            raise VerificationError("unable to verify container: %s not found" % self.command[0]) from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise VerificationError("unable to verify container: %s" % e) from e

        if result.returncode == 0:
            return True
        output = (result.stdout + "\n" + result.stderr).lower()
        if any(marker in output for marker in UNSIGNED_MARKERS):
            return False
        raise VerificationError(
            "unable to verify container: %s" % (result.stderr.strip()[:200] or "exit code %d" % result.returncode)
        )


def is_affirmative(answer: str) -> bool:
    """Only an exact, newline-terminated ``y`` (any case) counts as yes."""
    return answer.lower() == "y\n"


def stdin_prompt(question: str) -> bool:
    """Ask ``question`` on stderr and read one line from standard input."""
    click.echo(question, err=True, nl=False)
    try:
        answer = click.get_text_stream("stdin").readline()
    except (OSError, UnicodeDecodeError) as e:
        raise UserInputError("Error parsing input: %s" % e) from e
    return is_affirmative(answer)


class TrustGate:
    """Decide whether a pulled image may be kept.

    Args:
        verifier: Signature collaborator.
        prompt: Yes/no question asker; defaults to reading standard input.
        fail_closed: Treat a failed verification as fatal instead of as unsigned.
    """

    def __init__(self, verifier: SignatureVerifier, prompt: TrustPrompt | None = None,
                 fail_closed: bool = False):
        self.verifier = verifier
        self.prompt = prompt or stdin_prompt
        self.fail_closed = fail_closed

    def skip(self, reason: str, warn: bool = True) -> TrustDecision:
        if warn:
            logger.warning("Skipping container verification: %s", reason)
        else:
            logger.debug("Skipping container verification: %s", reason)
        return TrustDecision.SKIPPED

    def evaluate(self, path: str | os.PathLike) -> TrustDecision:
        """Check the signature on ``path`` and, if unsigned, ask the operator.

        Returns:
            ``VERIFIED``, ``UNSIGNED_ACCEPTED``, or ``VERIFICATION_ERROR``
            (check failed, operator kept the image anyway).

        Raises:
            VerificationError: If the check failed and the gate is fail-closed
                (file removed).
            TrustDeclinedError: If the operator declined (file removed, exit 3).
            ImageCleanupError: If the declined file could not be removed (exit 255).
            UserInputError: If the answer could not be read (file removed).
        """
        errored = False
        try:
            if self.verifier.is_signed(path):
                logger.info("Image signature verified")
                return TrustDecision.VERIFIED
        except VerificationError as e:
            if self.fail_closed:
                self._discard(Path(path))
                raise
            logger.warning("%s", e)
            errored = True

        logger.warning("This image is not signed, and thus its contents cannot be verified.")
        try:
            accepted = self.prompt(PROMPT_TEXT)
        except PullError:
            # no answer means nobody accepted the image
            self._discard(Path(path))
            raise
        if accepted:
            return TrustDecision.VERIFICATION_ERROR if errored else TrustDecision.UNSIGNED_ACCEPTED

        click.echo("Aborting.", err=True)
        self._discard(Path(path))
        raise TrustDeclinedError("image %s is not signed and was declined" % path)

    @staticmethod
    def _discard(path: Path):
        try:
            os.remove(path)
        except FileNotFoundError:
            # Already gone (e.g. removed by the interrupt guard); nothing left behind.
            logger.debug("%s already removed", path)
        except OSError as e:
            raise ImageCleanupError("Unable to delete container: %s" % e) from e
