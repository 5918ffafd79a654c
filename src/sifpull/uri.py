"""Image reference parsing and default file naming.

A reference is ``<scheme>://<locator>``; a bare string without ``://`` is
an untagged reference and is pulled from the library.

Examples::

    >>> split("library://alpine:latest")
    ('library', 'alpine:latest')
    >>> split("alpine")
    ('', 'alpine')
    >>> get_name("docker://ubuntu:20.04")
    'ubuntu_20.04'
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from sifpull.errors import UserInputError

LIBRARY_PROTOCOL = "library"
SHUB_PROTOCOL = "shub"
HTTP_PROTOCOL = "http"
HTTPS_PROTOCOL = "https"

DEFAULT_TAG = "latest"


class Transport(str, Enum):
    """Closed set of transport variants a reference can dispatch to."""

    LIBRARY = "library"
    SHUB = "shub"
    HTTP = "http"
    HTTPS = "https"
    OTHER = "other"

    @classmethod
    def from_scheme(cls, scheme: str) -> Transport:
        if scheme in ("", LIBRARY_PROTOCOL):
            return cls.LIBRARY
        if scheme == SHUB_PROTOCOL:
            return cls.SHUB
        if scheme == HTTP_PROTOCOL:
            return cls.HTTP
        if scheme == HTTPS_PROTOCOL:
            return cls.HTTPS
        return cls.OTHER


@dataclass(frozen=True)
class ImageReference:
    """A resolved reference: raw scheme tag plus transport-specific locator."""

    scheme: str
    locator: str

    def __post_init__(self):
        if not self.locator:
            raise UserInputError("bad uri %s" % self.source)

    @property
    def transport(self) -> Transport:
        return Transport.from_scheme(self.scheme)

    @property
    def source(self) -> str:
        """The reference as the user would have written it."""
        if not self.scheme:
            return self.locator
        return "%s://%s" % (self.scheme, self.locator)


def split(raw: str) -> tuple[str, str]:
    """Split ``raw`` into ``(scheme, locator)``; scheme is ``""`` when absent."""
    scheme, sep, locator = raw.partition("://")
    if not sep:
        return "", raw
    return scheme, locator


def resolve_reference(raw: str) -> ImageReference:
    """Parse a user-supplied locator string.

    Raises:
        UserInputError: If the locator part is empty.
    """
    scheme, locator = split(raw.strip())
    return ImageReference(scheme=scheme, locator=locator)


def _name_from_path(locator: str) -> str:
    last = locator.rstrip("/").rsplit("/", 1)[-1]
    # Digest references carry no tag; name them after the image alone.
    image = last.split("@", 1)[0]
    image, _, tag = image.partition(":")
    if not image:
        return ""
    return "%s_%s" % (image, tag or DEFAULT_TAG)


def _name_from_url(raw: str) -> str:
    path = urlsplit(raw).path
    return posixpath.basename(path.rstrip("/"))


def get_name(raw: str) -> str:
    """Derive a local file name from a full reference string.

    Returns ``""`` when no sensible name can be derived.
    """
    scheme, locator = split(raw)
    if not locator:
        return ""
    if scheme in (HTTP_PROTOCOL, HTTPS_PROTOCOL):
        return _name_from_url(raw)
    return _name_from_path(locator)


def default_destination_name(args: tuple[str, ...] | list[str], name_override: str | None = None) -> str:
    """Compute the destination file name for a pull.

    Precedence: explicit ``--name``, then the first positional argument when
    two were given, then a name derived from the source reference. Untagged
    references are named as if they were ``library://`` references.

    Args:
        args: Positional CLI arguments; the source reference is the last one.
        name_override: Value of the hidden ``--name`` option, if any.

    Raises:
        UserInputError: If no name was given and none can be derived.
    """
    if name_override:
        return name_override
    if len(args) == 2:
        return args[0]

    source = args[-1]
    scheme, _ = split(source)
    if not scheme:
        source = "%s://%s" % (LIBRARY_PROTOCOL, source)
    name = get_name(source)
    if not name:
        raise UserInputError("unable to derive an image name from %s, please specify one" % args[-1])
    return name
