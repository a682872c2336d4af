"""Slug helpers for feature keys and on-disk document names."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_DOCUMENT_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_IDENTIFIER_PATTERN: Pattern[str] = re.compile(r"[^a-zA-Z0-9_-]")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 80) -> str:
    """Normalize ``value`` into a lowercase, filesystem-friendly slug."""
    source = (value or "").strip().lower() or fallback.lower()
    slug = _HYPHEN_COLLAPSE.sub("-", _DOCUMENT_PATTERN.sub("-", source)).strip("-")
    if not slug:
        slug = fallback.lower() or "item"
    if len(slug) > max_length:
        slug = abbreviate_slug(slug, max_length=max_length)
    return slug


def abbreviate_slug(segment: str, *, max_length: int = 80) -> str:
    """Trim ``segment`` to ``max_length`` keeping it unique with a short digest."""
    slug = segment.strip("-") or "item"
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


def identifier_fragment(value: str, *, max_length: int = 40) -> str:
    """Replace characters outside ``[A-Za-z0-9_-]`` with underscores and truncate.

    Used for feature keys derived from free-form text such as CSS selectors,
    where case is meaningful and the key must stay stable across rebuilds.
    """
    return _IDENTIFIER_PATTERN.sub("_", value.strip())[:max_length]
