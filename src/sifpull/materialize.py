"""Copy verified image content to the requested destination."""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path

from sifpull.cache import PART_SUFFIX
from sifpull.errors import DestinationExistsError, FilesystemError
from sifpull.interrupt import remove_quietly

logger = logging.getLogger(__name__)

# Perms are 0o777 *prior* to umask
DESTINATION_MODE = 0o777


def check_destination(destination: str | os.PathLike, overwrite_allowed: bool):
    """Refuse to continue if ``destination`` exists and may not be replaced.

    Raises:
        DestinationExistsError: If the file exists and overwriting is off.
    """
    if not overwrite_allowed and os.path.lexists(destination):
        raise DestinationExistsError("image file already exists - will not overwrite")


def _staging_path(destination: Path) -> Path:
    return destination.with_name(".%s.%s%s" % (destination.name, uuid.uuid4().hex[:12], PART_SUFFIX))


def copy_image(source: str | os.PathLike, destination: str | os.PathLike) -> int:
    """Copy ``source`` byte-for-byte into ``destination``.

    The bytes go to a hidden ``.part`` sibling that replaces ``destination``
    only once the copy is complete. On any failure (or interruption) the
    sibling is removed and an existing ``destination`` is left untouched.

    Returns:
        Number of bytes copied.

    Raises:
        FilesystemError: If either file cannot be opened or the copy fails.
    """
    destination = Path(destination)
    staged = _staging_path(destination)
    published = False
    try:
        with open(source, "rb") as src:
            fd = os.open(staged, os.O_CREAT | os.O_EXCL | os.O_WRONLY, DESTINATION_MODE)
            with open(fd, "wb") as dst:
                shutil.copyfileobj(src, dst)
                copied = dst.tell()
        os.replace(staged, destination)
        published = True
    except OSError as e:
        raise FilesystemError("unable to copy %s to %s: %s" % (source, destination, e)) from e
    finally:
        if not published:
            remove_quietly(staged)
    logger.debug("Copied %d bytes from %s to %s", copied, source, destination)
    return copied
