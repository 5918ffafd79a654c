"""Immutable pull inputs and results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sifpull.uri import ImageReference

DEFAULT_LIBRARY_URI = "https://library.sylabs.io"


@dataclass(frozen=True)
class RegistryCredentials:
    """Docker-style registry credentials, already acquired by the caller."""

    username: str = ""
    password: str = ""
    login: bool = False

    def __repr__(self) -> str:
        return "RegistryCredentials(username=%r, password=%s, login=%r)" % (
            self.username, "'***'" if self.password else "''", self.login,
        )


@dataclass(frozen=True)
class PullRequest:
    """Everything a pull needs, built once from CLI input.

    Attributes:
        reference: Resolved source reference.
        destination_name: Local path the image is written to.
        overwrite_allowed: Replace an existing destination (``--force``).
        unauthenticated_allowed: Skip the signature check (``--allow-unauthenticated``).
        library_base_uri: Library API endpoint; empty disables signature checks.
        temp_dir: Scratch directory for the registry flow ("" = system default).
        https_disabled: Talk plain HTTP to hub and registry endpoints.
        registry_credentials: Credentials for the registry flow, if any.
        auth_token: Library bearer token, if any.
    """

    reference: ImageReference
    destination_name: str
    overwrite_allowed: bool = False
    unauthenticated_allowed: bool = False
    library_base_uri: str = DEFAULT_LIBRARY_URI
    temp_dir: str = ""
    https_disabled: bool = False
    registry_credentials: RegistryCredentials | None = None
    auth_token: str | None = None

    @property
    def source(self) -> str:
        return self.reference.source

    @property
    def destination(self) -> Path:
        return Path(self.destination_name)


class TrustDecision(str, Enum):
    """Outcome of the signature gate."""

    VERIFIED = "verified"
    UNSIGNED_ACCEPTED = "unsigned_accepted"
    UNSIGNED_DECLINED = "unsigned_declined"
    VERIFICATION_ERROR = "verification_error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PullOutcome:
    """Result of a successful pull."""

    destination_path: Path
    trust_decision: TrustDecision
    bytes_transferred: int = 0
    cache_hit: bool = False
