"""Structural pass for Liquid templates.

A template yields three families of chunks:

* the embedded ``{% schema %}`` JSON split into settings, blocks and presets
  (a schema that does not parse degrades to one raw ``code_block``);
* ``{% render %}`` / ``{% include %}`` calls with their target snippet;
* multi-line control-flow blocks (``if``, ``for``, ``case`` ...) with their
  condition expression and the identifiers, filters and classes they touch.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .chunks import Chunk, ChunkMetadata, ChunkType
from .scanning import line_at

LOGGER = logging.getLogger(__name__)

SCHEMA_PATTERN = re.compile(r"\{%-?\s*schema\s*-?%\}(.*?)\{%-?\s*endschema\s*-?%\}", re.DOTALL)
RENDER_PATTERN = re.compile(r"\{%-?\s*(render|include)\s+['\"]([^'\"]+)['\"]([^%]*?)-?%\}")

BLOCK_TAGS: Tuple[str, ...] = ("if", "unless", "for", "case", "capture", "form", "paginate", "tablerow")
_TAG_PATTERN = re.compile(
    r"\{%-?\s*(end)?(" + "|".join(BLOCK_TAGS) + r")\b(.*?)-?%\}",
    re.DOTALL,
)
_OUTPUT_PATTERN = re.compile(r"\{\{-?\s*([a-zA-Z_][\w.\[\]'\"-]*)")
_IDENTIFIER_PATTERN = re.compile(r"[a-zA-Z_][\w-]*(?:\.[\w-]+)*")
_FILTER_PATTERN = re.compile(r"\|\s*([a-z_]+)")
_CLASS_ATTRIBUTE = re.compile(r"class=\"([^\"]*)\"")
_ARGUMENT_PATTERN = re.compile(r"([a-zA-Z_][\w-]*)\s*:")
_LITERAL_WORDS = {
    "and",
    "or",
    "not",
    "contains",
    "in",
    "blank",
    "empty",
    "nil",
    "null",
    "true",
    "false",
    "limit",
    "offset",
    "reversed",
    "when",
    "with",
    "as",
}

MIN_BLOCK_LINES = 3
MAX_LISTED = 10


def chunk_template(content: str, path: str) -> List[Chunk]:
    """Return schema, render and block chunks for a Liquid template."""
    chunks: List[Chunk] = []
    chunks.extend(schema_chunks(content, path))
    chunks.extend(render_chunks(content, path))
    chunks.extend(block_chunks(content, path))
    return chunks


def load_schema(content: str) -> Optional[Dict[str, Any]]:
    """Return the parsed schema object, or ``None`` when absent or malformed."""
    match = SCHEMA_PATTERN.search(content)
    if match is None:
        return None
    try:
        schema = json.loads(match.group(1))
    except ValueError:
        return None
    return schema if isinstance(schema, dict) else None


def schema_name(content: str) -> Optional[str]:
    schema = load_schema(content)
    if not schema:
        return None
    name = schema.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def schema_chunks(content: str, path: str) -> List[Chunk]:
    match = SCHEMA_PATTERN.search(content)
    if match is None:
        return []
    start = line_at(content, match.start())
    end = line_at(content, match.end() - 1)
    raw = match.group(1)
    try:
        schema = json.loads(raw)
    except ValueError as err:
        LOGGER.debug("Schema in %s is not valid JSON: %s", path, err)
        schema = None
    if not isinstance(schema, dict):
        return [
            Chunk(
                type=ChunkType.CODE_BLOCK,
                content=raw.strip(),
                file=path,
                line_start=start,
                line_end=end,
                metadata=ChunkMetadata(node_type="schema_raw"),
            )
        ]

    chunks: List[Chunk] = []
    for setting in _entries(schema.get("settings")):
        setting_id = _text(setting.get("id"))
        if not setting_id:
            continue
        chunks.append(
            _schema_chunk(
                ChunkType.SCHEMA_SETTING,
                setting,
                path,
                start,
                end,
                ChunkMetadata(
                    setting_id=setting_id,
                    setting_type=_text(setting.get("type")),
                    setting_label=_text(setting.get("label")),
                ),
            )
        )
    for block in _entries(schema.get("blocks")):
        block_type = _text(block.get("type"))
        if not block_type:
            continue
        chunks.append(
            _schema_chunk(
                ChunkType.SCHEMA_BLOCK,
                block,
                path,
                start,
                end,
                ChunkMetadata(
                    setting_id=block_type,
                    setting_type="block",
                    setting_label=_text(block.get("name")),
                ),
            )
        )
    for preset in _entries(schema.get("presets")):
        name = _text(preset.get("name"))
        if not name:
            continue
        chunks.append(
            _schema_chunk(
                ChunkType.SCHEMA_PRESET,
                preset,
                path,
                start,
                end,
                ChunkMetadata(setting_id=name, setting_type="preset", setting_label=name),
            )
        )
    return chunks


def render_chunks(content: str, path: str) -> List[Chunk]:
    chunks: List[Chunk] = []
    for match in RENDER_PATTERN.finditer(content):
        arguments = tuple(dict.fromkeys(_ARGUMENT_PATTERN.findall(match.group(3))))
        chunks.append(
            Chunk(
                type=ChunkType.RENDER_CALL,
                content=match.group(0),
                file=path,
                line_start=line_at(content, match.start()),
                line_end=line_at(content, match.end() - 1),
                metadata=ChunkMetadata(
                    render_target=match.group(2),
                    node_type=match.group(1),
                    references=arguments,
                ),
            )
        )
    return chunks


def block_chunks(content: str, path: str) -> List[Chunk]:
    """Pair opening and closing tags per tag name; keep blocks of 3+ lines."""
    open_tags: Dict[str, List[Tuple[int, str]]] = {tag: [] for tag in BLOCK_TAGS}
    spans: List[Tuple[int, int, str, str]] = []
    for match in _TAG_PATTERN.finditer(content):
        closing, tag, expression = match.group(1), match.group(2), match.group(3)
        if not closing:
            open_tags[tag].append((match.start(), expression.strip()))
            continue
        if not open_tags[tag]:
            continue
        start, opening_expression = open_tags[tag].pop()
        spans.append((start, match.end(), tag, opening_expression))

    chunks: List[Chunk] = []
    for start, end, tag, expression in sorted(spans):
        line_start = line_at(content, start)
        line_end = line_at(content, end - 1)
        if line_end - line_start + 1 < MIN_BLOCK_LINES:
            continue
        body = content[start:end]
        chunks.append(
            Chunk(
                type=ChunkType.LIQUID_BLOCK,
                content=body,
                file=path,
                line_start=line_start,
                line_end=line_end,
                metadata=ChunkMetadata(
                    node_type=tag,
                    condition_expression=expression or None,
                    references=_references(expression, body),
                    filter_names=_unique(_FILTER_PATTERN.findall(body)),
                    html_classes=_html_classes(body),
                ),
            )
        )
    return chunks


def _schema_chunk(
    chunk_type: ChunkType,
    payload: Dict[str, Any],
    path: str,
    start: int,
    end: int,
    metadata: ChunkMetadata,
) -> Chunk:
    return Chunk(
        type=chunk_type,
        content=json.dumps(payload, indent=2, ensure_ascii=False),
        file=path,
        line_start=start,
        line_end=end,
        metadata=metadata,
    )


def _entries(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        # Translated labels: {"t": "sections.header.settings.logo.label"}
        value = value.get("t") or next(iter(value.values()), None)
    text = str(value).strip() if value is not None else ""
    return text or None


def _references(expression: str, body: str) -> Tuple[str, ...]:
    found: List[str] = []
    for token in _IDENTIFIER_PATTERN.findall(expression):
        if token.lower() not in _LITERAL_WORDS:
            found.append(token)
    for token in _OUTPUT_PATTERN.findall(body):
        found.append(token.split("[")[0].rstrip("."))
    return _unique(found)


def _html_classes(body: str) -> Tuple[str, ...]:
    classes: List[str] = []
    for attribute in _CLASS_ATTRIBUTE.findall(body):
        for name in attribute.split():
            if "{" in name or "}" in name or "%" in name:
                continue
            classes.append(name)
    return _unique(classes)


def _unique(values: List[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(value for value in values if value))[:MAX_LISTED]


__all__ = [
    "BLOCK_TAGS",
    "RENDER_PATTERN",
    "SCHEMA_PATTERN",
    "block_chunks",
    "chunk_template",
    "load_schema",
    "render_chunks",
    "schema_chunks",
    "schema_name",
]
