#!/usr/bin/env python3
"""
minimizer.py - Filter, Hosts, Resource and Public Suffix List Minimization

This module turns a hand-maintained source document into the compiled file
that ships to users. Every kind of document goes through the same skeleton:

    1. Split on CRLF, LF or CR
    2. Render the provenance header in the kind's comment syntax
    3. Run the kind's line handler over every line, in order
    4. Apply the kind's blank-line policy (drop or collapse)
    5. Join with LF and end with exactly one trailing newline

The per-kind behaviour lives in a small rule table (KIND_RULES) instead of
being spread over separate minimize functions:

    Kind      Comment  Drops                                   Blank lines
    filter    !        !comment (not !#), [header], "#", "# x"  dropped
    hosts     !        text after #, loopback/broadcast aliases dropped
    resource  #        lines starting with #                   collapsed
    psl       //       text after //                           dropped

Hosts files are converted while they are minimized:

    0.0.0.0 ads.example.com   →  ||ads.example.com^
    127.0.0.1 localhost       →  (dropped)

A machine-readable asset manifest (JSON) is handled separately by
minimize_meta(), which only re-serializes it compactly.

All transforms are pure; callers perform the I/O.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Callable, Final, NamedTuple


# =============================================================================
# CONSTANTS
# =============================================================================

BANNER: Final[str] = "[Nano Adblocker]"

WARNING_LINES: Final[tuple[str, str]] = (
    "This file is a compiled binary, do not modify",
    "All modifications will be overwritten on the next build",
)

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%SZ"

#: Hosts tokens that never name a host worth blocking
LOCAL_ALIASES: Final[frozenset[str]] = frozenset({
    "0.0.0.0",
    "127.0.0.1",
    "broadcasthost",
    "localhost",
    "local",
    "0",
    "::",
    "::1",
    "fe80::1%lo0",
})


# =============================================================================
# REGEX PATTERNS
# =============================================================================

#: Any of the three newline conventions
NEWLINE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\r\n|\n|\r")

#: ip6-localhost, ip6-allnodes, ip6-mcastprefix, ...
IP6_ALIAS_PATTERN: Final[re.Pattern[str]] = re.compile(r"^ip6-\w+$")

WHITESPACE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s+")

#: A rendered header field: "! License: GPL-3.0", "// Expires: 7 days", ...
HEADER_FIELD_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?:!|#|//) (Title|Expires|Cached|License|Source): (.*)$"
)

EXPIRES_VALUE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\d+) days?$")


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class FileKind(str, Enum):
    """Kind of document to minimize."""
    FILTER = "filter"
    HOSTS = "hosts"
    RESOURCE = "resource"
    PSL = "psl"
    META = "meta"


class ParseError(ValueError):
    """Raised when the JSON asset manifest cannot be parsed."""


@dataclass(frozen=True)
class HeaderMetadata:
    """
    Provenance attached to every compiled document.

    Attributes:
        license: License name or link
        source_url: Where the uncompiled source lives
        expires_days: Update interval hint for the consumer
        title: Filter list title (filter and hosts kinds only)
        generated_at: Build time, None for deterministic builds

    Example:
        >>> meta = HeaderMetadata("GPL-3.0", "https://example.com/a.txt", 1)
        >>> meta.generated_at is None
        True
    """
    license: str
    source_url: str
    expires_days: int
    title: str | None = None
    generated_at: datetime | None = None


class LineResult(NamedTuple):
    """
    Result of handling a single source line.

    Attributes:
        lines: Lines to emit, in order (empty tuple when dropped)
        reason: Reason for the drop (for stats), or None if kept
    """
    lines: tuple[str, ...]
    reason: str | None


class KindRule(NamedTuple):
    """One row of the rule table."""
    prefix: str
    handler: Callable[[str], LineResult]
    collapse_blanks: bool
    titled: bool
    warning: bool
    fixed_expires: int | None = None


@dataclass
class MinimizeStats:
    """Statistics from minimizing one document."""
    lines_in: int = 0
    lines_out: int = 0
    dropped: dict[str, int] = field(default_factory=dict)

    def record(self, reason: str) -> None:
        self.dropped[reason] = self.dropped.get(reason, 0) + 1


# =============================================================================
# LINE HANDLERS
# =============================================================================

def split_lines(raw: str) -> list[str]:
    """
    Split text on CRLF, LF or CR. A leading byte order mark is dropped.

    Example:
        >>> split_lines("a\\r\\nb\\rc\\nd")
        ['a', 'b', 'c', 'd']
    """
    if raw.startswith("\ufeff"):
        raw = raw[1:]
    return NEWLINE_PATTERN.split(raw)


def filter_line(line: str) -> LineResult:
    """
    Handle one line of a filter list.

    Comments are dropped except for the "!#" preprocessor directives
    (!#if, !#endif, !#include) which the extension still needs.

    Example:
        >>> filter_line("! Bad line")
        LineResult(lines=(), reason='comment')
        >>> filter_line("  !#include foo.txt ")
        LineResult(lines=('!#include foo.txt',), reason=None)
    """
    line = line.strip()

    if not line:
        return LineResult((), "empty")
    if line.startswith("!") and not line.startswith("!#"):
        return LineResult((), "comment")
    if line.startswith("["):
        return LineResult((), "header")
    if line == "#" or line.startswith("# "):
        return LineResult((), "comment")

    return LineResult((line,), None)


def is_local_alias(token: str) -> bool:
    """
    Check if a hosts token is a loopback/broadcast alias.

    Example:
        >>> is_local_alias("ip6-allnodes")
        True
        >>> is_local_alias("ads.example.com")
        False
    """
    return token in LOCAL_ALIASES or bool(IP6_ALIAS_PATTERN.match(token))


def hosts_line(line: str, block_syntax: bool = True) -> LineResult:
    """
    Handle one line of a hosts file.

    Everything after the first "#" is a comment. The rest is split on
    whitespace and every token that is not a local alias becomes its own
    output line, wrapped as ||token^ when block_syntax is set.

    Args:
        line: The raw line
        block_syntax: Emit ||token^ instead of the bare token

    Returns:
        LineResult with zero or more output lines

    Example:
        >>> hosts_line("0.0.0.0 example.com")
        LineResult(lines=('||example.com^',), reason=None)
        >>> hosts_line("127.0.0.1 localhost # loopback", block_syntax=False)
        LineResult(lines=(), reason='local')
    """
    index = line.find("#")
    if index > -1:
        if not line[:index].strip():
            return LineResult((), "comment")
        line = line[:index]

    line = line.strip()
    if not line:
        return LineResult((), "empty")

    out: list[str] = []
    for token in WHITESPACE_PATTERN.split(line):
        if not token or is_local_alias(token):
            continue
        out.append(f"||{token}^" if block_syntax else token)

    if not out:
        return LineResult((), "local")
    return LineResult(tuple(out), None)


def resource_line(line: str) -> LineResult:
    """
    Handle one line of a resource file.

    Resources are multi-line blocks, so leading whitespace is kept and
    blank lines survive (they separate blocks; the caller collapses runs).
    Any line starting with "#" is dropped, including comments that sit
    inside a block.
    """
    if line.startswith("#"):
        return LineResult((), "comment")
    return LineResult((line.rstrip(),), None)


def psl_line(line: str) -> LineResult:
    """
    Handle one line of the Public Suffix List.

    Example:
        >>> psl_line("example.com // comment")
        LineResult(lines=('example.com',), reason=None)
    """
    index = line.find("//")
    if index > -1:
        line = line[:index]

    line = line.strip()
    if not line:
        return LineResult((), "comment" if index > -1 else "empty")
    return LineResult((line,), None)


# =============================================================================
# RULE TABLE
# =============================================================================

KIND_RULES: Final[dict[FileKind, KindRule]] = {
    FileKind.FILTER: KindRule("!", filter_line, collapse_blanks=False, titled=True, warning=True),
    FileKind.HOSTS: KindRule("!", hosts_line, collapse_blanks=False, titled=True, warning=True),
    FileKind.RESOURCE: KindRule("#", resource_line, collapse_blanks=True, titled=False, warning=True),
    FileKind.PSL: KindRule("//", psl_line, collapse_blanks=False, titled=False, warning=False, fixed_expires=7),
}


def get_rule(kind: FileKind | str) -> KindRule:
    """Look up the rule table row for a kind."""
    kind = FileKind(kind)
    if kind not in KIND_RULES:
        raise ValueError(f"No line rules for kind: {kind.value}")
    return KIND_RULES[kind]


# =============================================================================
# HEADER
# =============================================================================

def format_timestamp(moment: datetime) -> str:
    """Format a build time as UTC, e.g. 2024-01-31T12:00:00Z."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def render_header(kind: FileKind | str, meta: HeaderMetadata) -> list[str]:
    """
    Render the provenance header as comment lines.

    The field order is part of the output format; consumers parse it.

    Args:
        kind: Document kind, selects comment syntax and optional lines
        meta: Header values

    Returns:
        Header lines, without trailing newline

    Example:
        >>> render_header("psl", HeaderMetadata("MPL-2.0", "https://x", 7))
        ['// Expires: 7 days', '// License: MPL-2.0', '// Source: https://x']
    """
    rule = get_rule(kind)
    p = rule.prefix
    expires = rule.fixed_expires if rule.fixed_expires is not None else meta.expires_days

    out: list[str] = []
    if rule.titled:
        out.append(BANNER)
        if meta.title:
            out.append(f"{p} Title: {meta.title}")
    out.append(f"{p} Expires: {expires} days")
    if meta.generated_at is not None:
        out.append(f"{p} Cached: {format_timestamp(meta.generated_at)}")
    out.append(f"{p} License: {meta.license}")
    out.append(f"{p} Source: {meta.source_url}")
    if rule.warning:
        out.extend(f"{p} {w}" for w in WARNING_LINES)
    return out


def parse_header(text: str) -> dict[str, str | int]:
    """
    Read the header fields back from a compiled document.

    Scanning stops at the first line that is not part of a header.

    Returns:
        Dict with lowercase field names; "expires" is an int

    Example:
        >>> parse_header("# Expires: 3 days\\n# License: GPL-3.0\\nfoo\\n")
        {'expires': 3, 'license': 'GPL-3.0'}
    """
    fields: dict[str, str | int] = {}
    for line in split_lines(text):
        if line == BANNER:
            continue
        match = HEADER_FIELD_PATTERN.match(line)
        if match:
            name, value = match.group(1).lower(), match.group(2)
            if name == "expires":
                days = EXPIRES_VALUE_PATTERN.match(value)
                fields[name] = int(days.group(1)) if days else value
            else:
                fields[name] = value
            continue
        if any(line.endswith(w) for w in WARNING_LINES):
            continue
        break
    return fields


# =============================================================================
# DOCUMENT TRANSFORMS
# =============================================================================

def collapse_blank_lines(lines: list[str]) -> list[str]:
    """
    Collapse runs of blank lines to a single blank line.

    Trailing blank lines are removed entirely, the document terminator
    takes their place.

    Example:
        >>> collapse_blank_lines(["a", "", "", "b", "", ""])
        ['a', '', 'b']
    """
    out: list[str] = []
    last_blank = False
    for line in lines:
        if not line.strip():
            if not last_blank:
                out.append("")
            last_blank = True
            continue
        last_blank = False
        out.append(line)

    while out and not out[-1]:
        out.pop()
    return out


def minimize_lines(
    lines: list[str],
    kind: FileKind | str,
    block_syntax: bool = True,
) -> tuple[list[str], MinimizeStats]:
    """
    Run the kind's line handler and blank-line policy over a document body.

    Args:
        lines: Source lines, already split
        kind: Document kind
        block_syntax: Hosts only, emit ||token^ rules

    Returns:
        Tuple of (body_lines, stats)
    """
    rule = get_rule(kind)
    handler = rule.handler
    if FileKind(kind) is FileKind.HOSTS:
        handler = partial(hosts_line, block_syntax=block_syntax)

    stats = MinimizeStats()
    body: list[str] = []
    for line in lines:
        stats.lines_in += 1
        result = handler(line)
        if result.reason is not None:
            stats.record(result.reason)
        body.extend(result.lines)

    if rule.collapse_blanks:
        before = len(body)
        body = collapse_blank_lines(body)
        collapsed = before - len(body)
        if collapsed:
            stats.dropped["blank"] = collapsed

    stats.lines_out = len(body)
    return body, stats


def minimize_document(
    raw: str,
    kind: FileKind | str,
    meta: HeaderMetadata,
    block_syntax: bool = True,
) -> tuple[str, MinimizeStats]:
    """
    Minimize a whole document and prepend its header.

    Returns:
        Tuple of (output_text, stats)
    """
    body, stats = minimize_lines(split_lines(raw), kind, block_syntax)
    out = render_header(kind, meta) + body
    out.append("")
    return "\n".join(out), stats


def minimize_meta(raw: str) -> str:
    """
    Re-serialize the JSON asset manifest without whitespace.

    Raises:
        ParseError: If the input is not valid JSON

    Example:
        >>> minimize_meta('{ "a": [1, 2] }')
        '{"a":[1,2]}'
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def minimize(
    raw: str,
    kind: FileKind | str,
    meta: HeaderMetadata | None = None,
    *,
    block_syntax: bool = True,
) -> str:
    """
    Minimize a document of any kind.

    Args:
        raw: Source text
        kind: Document kind
        meta: Header values (ignored for the JSON manifest)
        block_syntax: Hosts only, emit ||token^ rules

    Returns:
        The compiled document text

    Example:
        >>> meta = HeaderMetadata("GPL-3.0", "https://x", 1, title="T")
        >>> minimize("! c\\n||a.com^\\n", "filter", meta).splitlines()[-1]
        '||a.com^'
    """
    if FileKind(kind) is FileKind.META:
        return minimize_meta(raw)
    if meta is None:
        raise ValueError(f"Header metadata is required for kind: {FileKind(kind).value}")
    text, _ = minimize_document(raw, kind, meta, block_syntax)
    return text


# =============================================================================
# CLI INTERFACE
# =============================================================================

if __name__ == "__main__":
    import argparse
    import sys
    from pathlib import Path

    parser = argparse.ArgumentParser(description="Minimize one document")
    parser.add_argument("kind", choices=[k.value for k in FileKind])
    parser.add_argument("input_file")
    parser.add_argument("output_file")
    parser.add_argument("--license", default="")
    parser.add_argument("--source", default="")
    parser.add_argument("--title")
    parser.add_argument("--expires", type=int, default=1)
    parser.add_argument("--bare-hosts", action="store_true", help="Emit hosts as bare domains")
    parser.add_argument("--deterministic", action="store_true", help="Omit the Cached timestamp")
    args = parser.parse_args()

    raw_text = Path(args.input_file).read_text(encoding="utf-8-sig", errors="replace")
    header = HeaderMetadata(
        license=args.license,
        source_url=args.source,
        expires_days=args.expires,
        title=args.title,
        generated_at=None if args.deterministic else datetime.now(timezone.utc),
    )
    try:
        result = minimize(raw_text, args.kind, header, block_syntax=not args.bare_hosts)
    except ParseError as e:
        print(f"❌ ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    Path(args.output_file).write_text(result, encoding="utf-8", newline="\n")
