"""Top-level key chunking for JSON configuration and template files."""

from __future__ import annotations

import json
from typing import List, Optional, Tuple

from .chunks import Chunk, ChunkMetadata, ChunkType
from .scanning import blank_comments, line_at, skip_string

KeySpan = Tuple[str, int, int]


def chunk_with_json(content: str, path: str) -> List[Chunk]:
    """Parse strictly; each top-level key becomes a chunk located on its own lines."""
    try:
        document = json.loads(content)
    except ValueError:
        return []
    if not isinstance(document, dict):
        return []
    located = {key: (start, end) for key, start, end in top_level_key_spans(content)}
    total_lines = content.count("\n") + 1
    chunks: List[Chunk] = []
    for key, value in document.items():
        span = located.get(key)
        if span is None:
            text = json.dumps({key: value}, indent=2, ensure_ascii=False)
            chunks.append(_key_chunk(key, text, path, 1, total_lines))
            continue
        start, end = span
        chunks.append(_key_chunk(key, content[start:end], path, line_at(content, start), line_at(content, end - 1)))
    return chunks


def chunk_with_scanner(content: str, path: str) -> List[Chunk]:
    """Lexical fallback for JSON with comments or trailing commas."""
    scrubbed = blank_comments(content, line_comments=True)
    return [
        _key_chunk(key, content[start:end], path, line_at(content, start), line_at(content, end - 1))
        for key, start, end in top_level_key_spans(scrubbed)
    ]


def top_level_key_spans(text: str) -> List[KeySpan]:
    """Return ``(key, start, end)`` offsets for every key of the outermost object."""
    starts: List[Tuple[str, int]] = []
    closing: Optional[int] = None
    depth = 0
    position = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char == '"':
            end = skip_string(text, position)
            if depth == 1 and _followed_by_colon(text, end):
                starts.append((_decode_key(text[position:end]), position))
            position = end
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0 and closing is None:
                closing = position
        position += 1

    spans: List[KeySpan] = []
    for index, (key, start) in enumerate(starts):
        if index + 1 < len(starts):
            limit = starts[index + 1][1]
        else:
            limit = closing if closing is not None else length
        end = limit
        while end > start and (text[end - 1].isspace() or text[end - 1] == ","):
            end -= 1
        spans.append((key, start, end))
    return spans


def _followed_by_colon(text: str, position: int) -> bool:
    length = len(text)
    while position < length and text[position].isspace():
        position += 1
    return position < length and text[position] == ":"


def _decode_key(literal: str) -> str:
    try:
        return str(json.loads(literal))
    except ValueError:
        return literal.strip('"')


def _key_chunk(key: str, text: str, path: str, start: int, end: int) -> Chunk:
    return Chunk(
        type=ChunkType.CODE_BLOCK,
        content=text,
        file=path,
        line_start=start,
        line_end=max(start, end),
        metadata=ChunkMetadata(setting_id=key, node_type="json_key"),
    )


__all__ = ["chunk_with_json", "chunk_with_scanner", "top_level_key_spans"]
