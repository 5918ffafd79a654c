"""Error taxonomy for image pulls.

Every fatal failure is a :class:`PullError` subclass carrying the process
exit status the CLI should terminate with.
"""

from __future__ import annotations


class PullError(Exception):
    """Base class for fatal pull failures."""

    exit_code = 1


class UserInputError(PullError):
    """Malformed or empty image reference, or unusable CLI input."""


class NetworkError(PullError):
    """Remote lookup or transfer failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class IntegrityMismatchError(PullError):
    """Downloaded bytes do not hash to the value declared by the remote."""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            "Cached File Hash(%s) and Expected Hash(%s) does not match" % (actual, expected)
        )
        self.expected = expected
        self.actual = actual


class FilesystemError(PullError):
    """Destination or cache I/O failed."""


class DestinationExistsError(FilesystemError):
    """Destination already exists and overwriting was not allowed."""


class VerificationError(PullError):
    """The signature check itself failed (network or crypto failure).

    Not fatal by default: the trust gate downgrades it to a warning and
    treats the image as unsigned.
    """


class TrustDeclinedError(PullError):
    """Operator declined to keep an unsigned image."""

    exit_code = 3


class ImageCleanupError(FilesystemError):
    """A declined image could not be removed from disk."""

    exit_code = 255


class PullInterruptedError(PullError):
    """The pull was stopped by a termination request."""

    def __init__(self, signum: int | None = None):
        if signum is None:
            msg = "pull interrupted"
        else:
            msg = "pull interrupted by signal %d" % signum
        super().__init__(msg)
        self.signum = signum
