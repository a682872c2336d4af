"""Content hashing used to gate caches, reindexing and enrichment."""

from __future__ import annotations

import hashlib


def content_hash(content: str) -> str:
    """Return a stable hex digest for ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_hash(content: str, length: int = 12) -> str:
    """Return a truncated digest suitable for signatures in logs and detectors."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()[:length]  # noqa: S324 - not security sensitive
