"""Tests for CLI table formatting."""

from __future__ import annotations

from sifpull.cache import CacheEntry
from sifpull.utils.cli_formatters import format_cache_table, format_size


def test_format_size():
    assert format_size(0) == "0 B"
    assert format_size(1023) == "1023 B"
    assert format_size(1536) == "1.5 KiB"
    assert format_size(5 * 1024 * 1024) == "5.0 MiB"
    assert format_size(3 * 1024 ** 4) == "3072.0 GiB"


def test_empty_table():
    assert format_cache_table([]) == "No cached images."


def test_table_layout(tmp_path):
    f = tmp_path / "alpine_latest"
    f.write_bytes(b"x" * 2048)
    table = format_cache_table([CacheEntry("sha256.abc", "alpine_latest", f)])
    lines = table.splitlines()
    assert lines[0].split() == ["Name", "Size", "Hash"]
    assert set(lines[1]) == {"-"}
    assert lines[2].split() == ["alpine_latest", "2.0", "KiB", "sha256.abc"]
