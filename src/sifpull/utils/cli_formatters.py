"""Presentation layer formatting functions for sifpull CLI."""

from sifpull.cache import CacheEntry


def format_size(num_bytes: int) -> str:
    """Render a byte count with a binary unit suffix (e.g. ``"1.5 MiB"``)."""
    if num_bytes < 1024:
        return "%d B" % num_bytes
    size = float(num_bytes)
    for unit in ("KiB", "MiB", "GiB"):
        size /= 1024
        if size < 1024 or unit == "GiB":
            break
    return "%.1f %s" % (size, unit)


def format_cache_table(entries: list[CacheEntry]) -> str:
    """Format cache entries as a text table.

    Args:
        entries: Cache entries to display.

    Returns:
        Formatted multi-line string (no trailing newline).
    """
    if not entries:
        return "No cached images."

    hashes = [e.content_hash for e in entries]
    names = [e.logical_name for e in entries]
    sizes = [format_size(e.size) for e in entries]

    # Column definitions: (header, width, values)
    columns: list[tuple[str, int, list[str]]] = [
        ("Name", max(len("Name"), *(len(n) for n in names)) + 2, names),
        ("Size", max(len("Size"), *(len(s) for s in sizes)) + 2, sizes),
        ("Hash", max(len("Hash"), *(len(h) for h in hashes)), hashes),
    ]

    header = " ".join(f"{col[0]:<{col[1]}}" for col in columns)
    total_width = sum(col[1] for col in columns) + len(columns) - 1
    separator = "-" * total_width

    lines = [header, separator]
    for i in range(len(entries)):
        row = " ".join(f"{col[2][i]:<{col[1]}}" for col in columns)
        lines.append(row)

    return "\n".join(lines)
