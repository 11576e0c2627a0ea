#!/usr/bin/env python3
"""
downloader.py - Third Party Filter Downloader

Downloads upstream lists one after another, decoding the response body by
hand according to Content-Encoding (identity, gzip, deflate), then sanity
checks every file. The run stops at the first failure; a half-updated
ThirdParty directory is easier to spot than a silently stale one.

Usage:
    python -m nano_build.downloader --outdir ThirdParty/
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
import zlib
from pathlib import Path
from typing import Iterable

import aiohttp
import aiofiles

from nano_build import config
from nano_build.config import Upstream
from nano_build.sanitizer import sanitize_file

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Raised when a list cannot be downloaded or decoded."""


class CorruptedFileError(DownloadError):
    """Raised when a downloaded list looks like an HTML error page."""


# =============================================================================
# DECODING
# =============================================================================

class StreamDecoder:
    """
    Incremental decoder for one response body.

    Example:
        >>> d = StreamDecoder("deflate")
        >>> d.decompress(zlib.compress(b"abc")) + d.flush()
        b'abc'
    """

    def __init__(self, encoding: str | None) -> None:
        self.encoding = (encoding or "identity").strip().lower()
        self._started = False

        if self.encoding == "identity":
            self._obj = None
        elif self.encoding in ("gzip", "x-gzip"):
            self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)
        elif self.encoding == "deflate":
            self._obj = zlib.decompressobj(zlib.MAX_WBITS)
        else:
            raise DownloadError(f"Unsupported Content-Encoding: {encoding}")

    def decompress(self, chunk: bytes) -> bytes:
        if self._obj is None:
            return chunk
        try:
            data = self._obj.decompress(chunk)
        except zlib.error as e:
            # Some servers send raw deflate without the zlib wrapper
            if self.encoding == "deflate" and not self._started:
                self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
                self._started = True
                return self.decompress(chunk)
            raise DownloadError(f"Could not decode {self.encoding} body: {e}") from e
        self._started = True
        return data

    def flush(self) -> bytes:
        if self._obj is None:
            return b""
        try:
            return self._obj.flush()
        except zlib.error as e:
            raise DownloadError(f"Could not decode {self.encoding} body: {e}") from e


# =============================================================================
# FETCH AND VALIDATE
# =============================================================================

async def fetch_one(
    session: aiohttp.ClientSession,
    url: str,
    dest: Path,
    timeout: int = config.DEFAULT_TIMEOUT,
) -> int:
    """
    Download a single URL into dest.

    The session must be created with auto_decompress=False, the body is
    decoded here.

    Args:
        session: Shared client session
        url: URL to fetch
        dest: Output file path
        timeout: Total request timeout in seconds

    Returns:
        Number of decoded bytes written

    Raises:
        DownloadError: Non-200 status, unsupported encoding, network failure
    """
    headers = {
        "User-Agent": config.USER_AGENT,
        "Accept-Encoding": "gzip, deflate",
    }
    written = 0
    try:
        async with session.get(
            url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
            allow_redirects=True,
        ) as response:
            if response.status != 200:
                raise DownloadError(f"HTTP {response.status} for {url}")

            decoder = StreamDecoder(response.headers.get("Content-Encoding"))
            async with aiofiles.open(dest, "wb") as f:
                async for chunk in response.content.iter_chunked(config.CHUNK_SIZE):
                    data = decoder.decompress(chunk)
                    if data:
                        await f.write(data)
                        written += len(data)
                tail = decoder.flush()
                if tail:
                    await f.write(tail)
                    written += len(tail)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise DownloadError(f"Could not download {url}: {e!r}") from e

    return written


def looks_corrupted(text: str) -> bool:
    """
    Check if content looks like an HTML page instead of a plain-text list.

    Example:
        >>> looks_corrupted("  <html><body>502</body></html>\\n")
        True
        >>> looks_corrupted("||example.com^")
        False
    """
    text = text.strip()
    return text.startswith("<") and text.endswith(">")


async def validate_file(path: str | Path) -> None:
    """
    Check that a downloaded file is not obviously wrong.

    Raises:
        CorruptedFileError: If the file looks like an HTML error page
    """
    async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
        text = await f.read()
    if looks_corrupted(text):
        logger.error("%s seems to be corrupted!", path)
        raise CorruptedFileError(f"{path} seems to be corrupted!")


# =============================================================================
# UPDATE LOOP
# =============================================================================

async def update_all(
    upstreams: Iterable[Upstream],
    out_dir: Path,
    delay: float = config.DEFAULT_DELAY,
    timeout: int = config.DEFAULT_TIMEOUT,
) -> list[Path]:
    """
    Download every upstream list, one at a time.

    Each file is fetched, sanitized when flagged, and validated before the
    next download starts.

    Returns:
        Paths of the downloaded files, in order
    """
    upstreams = list(upstreams)
    out_dir.mkdir(parents=True, exist_ok=True)
    done: list[Path] = []

    async with aiohttp.ClientSession(auto_decompress=False) as session:
        for i, upstream in enumerate(upstreams):
            dest = out_dir / upstream.name
            logger.info("Downloading %s to %s ...", upstream.url, dest)

            size = await fetch_one(session, upstream.url, dest, timeout)
            if upstream.sanitize:
                await sanitize_file(dest)
            await validate_file(dest)

            logger.info("   %s: %s bytes", upstream.name, f"{size:,}")
            done.append(dest)

            if delay > 0 and i < len(upstreams) - 1:
                await asyncio.sleep(delay)

    return done


def select_upstreams(names: list[str] | None) -> list[Upstream]:
    """Pick upstreams by file name, all of them when names is empty."""
    if not names:
        return list(config.UPSTREAMS)

    known = {u.name: u for u in config.UPSTREAMS}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise ValueError(f"Unknown upstream(s): {', '.join(unknown)}")
    return [known[n] for n in names]


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Update third party filters")
    parser.add_argument("--outdir", default=config.THIRD_PARTY_DIR, help="Output directory for downloaded files")
    parser.add_argument("--delay", type=float, default=config.DEFAULT_DELAY, help="Seconds to wait between downloads")
    parser.add_argument("--timeout", type=int, default=config.DEFAULT_TIMEOUT, help="Request timeout in seconds")
    parser.add_argument("--only", nargs="+", metavar="NAME", help="Only download these files")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s", force=True, stream=sys.stdout)

    try:
        upstreams = select_upstreams(args.only)
        print(f"🔄 Fetching {len(upstreams)} sources...")

        start_time = time.time()
        done = asyncio.run(update_all(upstreams, Path(args.outdir), args.delay, args.timeout))
        total_time = time.time() - start_time

        print(f"\n✅ Fetched: {len(done)}/{len(upstreams)} ({total_time:.1f}s)")
        return 0

    except Exception as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
