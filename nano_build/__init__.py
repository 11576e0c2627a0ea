"""
nano_build package - Nano filter build scripts

Modules:
    config: Directories, licenses, expiry defaults and upstream URLs
    minimizer: Strip comments/whitespace and prepend provenance headers
    sanitizer: Remove unwanted lines from downloaded lists
    downloader: Fetch third-party lists with gzip/deflate decoding
    pipeline: Main build pipeline
"""

__version__ = "1.0.0"
