"""Token estimates shared by the context engine and prompt helpers."""

from __future__ import annotations

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate the model token count of ``text`` (four characters per token)."""
    if not text:
        return 0
    return int(math.ceil(len(text) / CHARS_PER_TOKEN))
