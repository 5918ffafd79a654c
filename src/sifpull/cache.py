"""Content-addressed cache for library images.

Layout::

    <cache_dir>/library/<content hash>/<logical name>

An entry is only ever published under its final name by an atomic
``os.replace`` after its bytes were hashed and matched, so concurrent
pulls of the same hash converge on identical content and a failed or
mismatched download never shows up as a valid entry. Staging files carry
a unique ``.part`` suffix in the entry's own directory.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from sifpull.errors import FilesystemError

logger = logging.getLogger(__name__)

LIBRARY_SUBDIR = "library"
PART_SUFFIX = ".part"
HASH_PREFIX = "sha256."


def image_hash(path: str | os.PathLike, chunk_size: int = 1 << 20) -> str:
    """Return the library-style content hash (``sha256.<hex>``) of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            b = f.read(chunk_size)
            if not b:
                break
            h.update(b)
    return HASH_PREFIX + h.hexdigest()


def _check_component(value: str, what: str) -> str:
    if not value or value in (".", "..") or "/" in value or os.sep in value:
        raise FilesystemError("invalid cache %s: %r" % (what, value))
    return value


@dataclass(frozen=True)
class CacheEntry:
    """A cached image: its content hash, logical name and stored location."""

    content_hash: str
    logical_name: str
    local_path: Path

    @property
    def size(self) -> int:
        return self.local_path.stat().st_size

    def verify(self) -> bool:
        """Re-hash the stored bytes and compare with the recorded hash."""
        return image_hash(self.local_path) == self.content_hash


class LibraryCache:
    """Maps ``(content hash, logical name)`` to a locally stored image."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    @property
    def library_dir(self) -> Path:
        return self.root / LIBRARY_SUBDIR

    def path_for(self, content_hash: str, name: str) -> Path:
        """Deterministic location of an entry; does not create anything."""
        return self.library_dir / _check_component(content_hash, "hash") / _check_component(name, "name")

    def exists(self, content_hash: str, name: str) -> bool:
        """Whether a published entry is present.

        Raises:
            FilesystemError: If the entry cannot be inspected.
        """
        path = self.path_for(content_hash, name)
        try:
            return path.is_file()
        except OSError as e:
            raise FilesystemError("unable to check if %s exists: %s" % (path, e)) from e

    def entry(self, content_hash: str, name: str) -> CacheEntry:
        return CacheEntry(content_hash, name, self.path_for(content_hash, name))

    def staging_path(self, content_hash: str, name: str) -> Path:
        """Create the entry directory and return a unique scratch path inside it."""
        final = self.path_for(content_hash, name)
        try:
            final.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("unable to create cache directory %s: %s" % (final.parent, e)) from e
        return final.with_name("%s.%s%s" % (final.name, uuid.uuid4().hex[:12], PART_SUFFIX))

    def publish(self, staged: Path, content_hash: str, name: str) -> CacheEntry:
        """Atomically move a verified staging file to its final name."""
        final = self.path_for(content_hash, name)
        try:
            os.replace(staged, final)
        except OSError as e:
            raise FilesystemError("unable to publish cache entry %s: %s" % (final, e)) from e
        logger.debug("Cached %s as %s", name, final)
        return CacheEntry(content_hash, name, final)

    def evict(self, content_hash: str, name: str) -> bool:
        """Remove an entry (and its hash directory once empty)."""
        path = self.path_for(content_hash, name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FilesystemError("unable to remove cache entry %s: %s" % (path, e)) from e
        try:
            path.parent.rmdir()
        except OSError:
            pass  # other names or in-flight downloads still live there
        logger.info("Evicted cache entry %s", path)
        return True

    def entries(self) -> list[CacheEntry]:
        """List published entries, sorted by hash then name."""
        if not self.library_dir.is_dir():
            return []
        found = []
        for hash_dir in sorted(self.library_dir.iterdir()):
            if not hash_dir.is_dir():
                continue
            for f in sorted(hash_dir.iterdir()):
                if f.is_file() and not f.name.endswith(PART_SUFFIX):
                    found.append(CacheEntry(hash_dir.name, f.name, f))
        return found

    def clean(self) -> int:
        """Remove the whole library cache; returns the number of entries dropped."""
        count = len(self.entries())
        if self.library_dir.exists():
            try:
                shutil.rmtree(self.library_dir)
            except OSError as e:
                raise FilesystemError("unable to clean cache %s: %s" % (self.library_dir, e)) from e
        return count
