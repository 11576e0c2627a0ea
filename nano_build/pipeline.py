#!/usr/bin/env python3
"""
pipeline.py

Main build pipeline for the compiled filter lists.

Usage:
    python -m nano_build.pipeline [--nano-only | --all] [--deterministic] [--root DIR]

Scopes:
    --nano-only   Nano filter lists only
    (default)     Nano filter lists and Nano resources
    --all         Also the downloaded third-party assets (PSL, resources,
                  hosts lists converted to ||domain^ rules, assets.json)

Every file is an independent task; all tasks run concurrently and the first
failure aborts the build.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import NamedTuple

import aiofiles

from nano_build import config
from nano_build.minimizer import (
    FileKind,
    HeaderMetadata,
    MinimizeStats,
    ParseError,
    minimize_document,
    minimize_meta,
    split_lines,
)

logger = logging.getLogger(__name__)

INCLUDE_DIRECTIVE = "!#include"


class IncludeError(ValueError):
    """Raised when an !#include directive names a missing or unsafe file."""


class BuildTask(NamedTuple):
    """One source file to compile."""
    kind: FileKind
    source: Path
    output: Path
    meta: HeaderMetadata | None
    block_syntax: bool = True
    check_includes: bool = False


# =============================================================================
# TASK TABLES
# =============================================================================

def nano_filter_tasks(root: Path, generated_at: datetime | None) -> list[BuildTask]:
    """Nano filter lists, 1 day expiry."""
    tasks = []
    for name, title in config.NANO_FILTERS:
        meta = HeaderMetadata(
            license=config.NANO_LICENSE,
            source_url=f"{config.NANO_SOURCE_PREFIX}{config.NANO_SOURCE_DIR}/{name}",
            expires_days=config.FILTER_EXPIRES,
            title=title,
            generated_at=generated_at,
        )
        tasks.append(BuildTask(
            FileKind.FILTER,
            root / config.NANO_SOURCE_DIR / name,
            root / config.NANO_OUTPUT_DIR / name,
            meta,
            check_includes=True,
        ))
    return tasks


def nano_resource_tasks(root: Path, generated_at: datetime | None) -> list[BuildTask]:
    """Nano resources, 3 days expiry."""
    tasks = []
    for name in config.NANO_RESOURCES:
        meta = HeaderMetadata(
            license=config.NANO_LICENSE,
            source_url=f"{config.NANO_SOURCE_PREFIX}{config.NANO_SOURCE_DIR}/{name}",
            expires_days=config.RESOURCE_EXPIRES,
            generated_at=generated_at,
        )
        tasks.append(BuildTask(
            FileKind.RESOURCE,
            root / config.NANO_SOURCE_DIR / name,
            root / config.NANO_OUTPUT_DIR / name,
            meta,
        ))
    return tasks


def third_party_tasks(root: Path, generated_at: datetime | None) -> list[BuildTask]:
    """Downloaded assets that get minimized, plus the JSON asset manifest."""
    expiry = {
        FileKind.FILTER: config.FILTER_EXPIRES,
        FileKind.HOSTS: config.FILTER_EXPIRES,
        FileKind.RESOURCE: config.RESOURCE_EXPIRES,
        FileKind.PSL: config.PSL_EXPIRES,
    }

    tasks = []
    for upstream in config.UPSTREAMS:
        if upstream.kind is None:
            continue
        kind = FileKind(upstream.kind)
        meta = HeaderMetadata(
            license=upstream.license,
            source_url=upstream.url,
            expires_days=expiry.get(kind, config.FILTER_EXPIRES),
            title=upstream.title or Path(upstream.name).stem,
            generated_at=generated_at,
        )
        tasks.append(BuildTask(
            kind,
            root / config.THIRD_PARTY_DIR / upstream.name,
            root / config.THIRD_PARTY_OUTPUT_DIR / upstream.name,
            meta,
        ))

    tasks.append(BuildTask(
        FileKind.META,
        root / config.ASSETS_FILE,
        root / config.NANO_OUTPUT_DIR / config.ASSETS_FILE,
        None,
    ))
    return tasks


def build_tasks(
    root: Path,
    scope: str = "default",
    generated_at: datetime | None = None,
) -> list[BuildTask]:
    """
    Collect the tasks for a build scope.

    Args:
        root: Repository root
        scope: "nano", "default" or "all"
        generated_at: Build time for the Cached header, None to omit it

    Returns:
        List of independent tasks
    """
    if scope not in ("nano", "default", "all"):
        raise ValueError(f"Unknown build scope: {scope}")

    tasks = nano_filter_tasks(root, generated_at)
    if scope in ("default", "all"):
        tasks += nano_resource_tasks(root, generated_at)
    if scope == "all":
        tasks += third_party_tasks(root, generated_at)
    return tasks


# =============================================================================
# INCLUDES
# =============================================================================

def check_includes(lines: list[str], base_dir: Path) -> list[Path]:
    """
    Validate every !#include directive of a filter list.

    Included files must live inside base_dir: absolute paths, ".."
    segments and backslashes are rejected, as are missing files.

    Args:
        lines: Source lines of the filter list
        base_dir: Directory the list is compiled from

    Returns:
        Paths of the included files

    Raises:
        IncludeError: For the first bad directive
    """
    base = base_dir.resolve()
    found: list[Path] = []

    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line.startswith(INCLUDE_DIRECTIVE):
            continue

        target = line[len(INCLUDE_DIRECTIVE):].strip()
        if not target:
            raise IncludeError(f"line {lineno}: !#include without a file name")

        rel = PurePosixPath(target)
        if rel.is_absolute() or ".." in rel.parts or "\\" in target:
            raise IncludeError(f"line {lineno}: !#include escapes the source directory: {target}")

        path = (base / rel).resolve()
        if not path.is_relative_to(base):
            raise IncludeError(f"line {lineno}: !#include escapes the source directory: {target}")
        if not path.is_file():
            raise IncludeError(f"line {lineno}: !#include names a missing file: {target}")

        found.append(path)

    return found


# =============================================================================
# TASK EXECUTION
# =============================================================================

async def run_task(task: BuildTask) -> MinimizeStats | None:
    """
    Read, minimize and write one file.

    Returns:
        Minimization stats, None for the JSON manifest
    """
    async with aiofiles.open(task.source, encoding="utf-8-sig", errors="replace", newline="") as f:
        raw = await f.read()

    stats: MinimizeStats | None = None
    if task.kind is FileKind.META:
        try:
            text = minimize_meta(raw)
        except ParseError as e:
            raise ParseError(f"{task.source}: {e}") from e
    else:
        if task.check_includes:
            try:
                check_includes(split_lines(raw), task.source.parent)
            except IncludeError as e:
                raise IncludeError(f"{task.source}: {e}") from e
        text, stats = minimize_document(raw, task.kind, task.meta, task.block_syntax)

    task.output.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(task.output, "w", encoding="utf-8", newline="\n") as f:
        await f.write(text)

    if stats is not None:
        logger.info(f"   {task.output.name}: {stats.lines_in:,} → {stats.lines_out:,} lines")
    else:
        logger.info(f"   {task.output.name}: minimized")
    return stats


async def run_all(tasks: list[BuildTask]) -> list[MinimizeStats | None]:
    """Run every task concurrently; the first failure propagates."""
    return await asyncio.gather(*(run_task(t) for t in tasks))


def _configure_logging() -> logging.Logger:
    """Return configured pipeline logger with a clean, single-line format."""
    logging.basicConfig(
        level=logging.INFO, format="%(message)s", force=True, stream=sys.stdout
    )
    return logging.getLogger("pipeline")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Rebuild compiled filter lists")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--nano-only", action="store_true", help="Only compile Nano filter lists")
    group.add_argument("--all", action="store_true", help="Also compile third-party assets")
    parser.add_argument("--deterministic", action="store_true", help="Omit the Cached timestamp")
    parser.add_argument("--root", default=".", help="Repository root")
    args = parser.parse_args(argv)

    log = _configure_logging()
    scope = "nano" if args.nano_only else "all" if args.all else "default"
    generated_at = None if args.deterministic else datetime.now(timezone.utc)

    try:
        log.info("🚀 Starting build...")
        log.info("-" * 60)

        start_time = time.time()
        tasks = build_tasks(Path(args.root), scope, generated_at)
        log.info(f"📖 Compiling {len(tasks)} files ({scope})")
        asyncio.run(run_all(tasks))
        total_time = time.time() - start_time

        log.info(f"\n⏱️  Total time: {total_time:.1f}s")
        log.info("✅ Build completed successfully!")
        return 0

    except Exception as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
