#!/usr/bin/env python3
"""
sanitizer.py - Content Sanitizer for Downloaded Lists

Some upstream lists occasionally carry entries we refuse to ship. Instead of
dropping them silently, the offending line is replaced with a marker comment
so the line numbers of the downloaded file stay stable:

    latam.example.com  →  # Line Removed by Content Sanitizer

Every other line is trimmed.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Final

import aiofiles

logger = logging.getLogger(__name__)

#: Whole-word match, case-insensitive
DEFAULT_PATTERN: Final[re.Pattern[str]] = re.compile(r"\b\x6C\x61\x74\x61\x6D\b", re.IGNORECASE)

REMOVED_MARKER: Final[str] = "# Line Removed by Content Sanitizer"


def sanitize_text(
    text: str,
    pattern: re.Pattern[str] = DEFAULT_PATTERN,
) -> tuple[str, list[str]]:
    """
    Replace every line matching pattern with the removal marker.

    Args:
        text: File content
        pattern: Unwanted content

    Returns:
        Tuple of (sanitized_text, removed_lines)

    Example:
        >>> sanitize_text(" a.com \\nLATAM.example.com")
        ('a.com\\n# Line Removed by Content Sanitizer', ['LATAM.example.com'])
    """
    lines = text.split("\n")
    removed: list[str] = []
    for i, line in enumerate(lines):
        if pattern.search(line):
            lines[i] = REMOVED_MARKER
            removed.append(line)
        else:
            lines[i] = line.strip()
    return "\n".join(lines), removed


async def sanitize_file(
    path: str | Path,
    pattern: re.Pattern[str] = DEFAULT_PATTERN,
) -> int:
    """
    Sanitize a file in place.

    Returns:
        Number of removed lines
    """
    async with aiofiles.open(path, encoding="utf-8-sig", errors="replace") as f:
        text = await f.read()

    text, removed = sanitize_text(text, pattern)
    for line in removed:
        logger.warning("Content Sanitizer: Removed line '%s' from %s", line, path)

    async with aiofiles.open(path, "w", encoding="utf-8", newline="\n") as f:
        await f.write(text)
    return len(removed)


if __name__ == "__main__":
    import asyncio
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m nano_build.sanitizer <file> [file ...]")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    for name in sys.argv[1:]:
        count = asyncio.run(sanitize_file(name))
        print(f"Sanitized {name}: {count} line(s) removed")
