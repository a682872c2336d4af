"""Turn chunks into keyed, described features."""

from __future__ import annotations

from typing import Dict, List, Sequence

from ..memory.schema import Feature
from ..parsers.chunks import Chunk, ChunkType
from ..utils.slug import identifier_fragment

MAX_KEYWORDS = 12


def feature_slug(chunk: Chunk, index: int) -> str:
    """Stable key from chunk type and identifying metadata, else the first line."""
    meta = chunk.metadata
    if chunk.type is ChunkType.SCHEMA_SETTING and meta.setting_id:
        return f"setting-{meta.setting_id}"
    if chunk.type is ChunkType.SCHEMA_BLOCK and meta.setting_id:
        return f"block-{meta.setting_id}"
    if chunk.type is ChunkType.SCHEMA_PRESET and meta.setting_id:
        return f"preset-{identifier_fragment(meta.setting_id)}"
    if chunk.type is ChunkType.RENDER_CALL and meta.render_target:
        return f"render-{meta.render_target}"
    if chunk.type is ChunkType.LIQUID_BLOCK:
        return f"{meta.node_type or 'block'}-L{chunk.line_start}"
    if chunk.type is ChunkType.CSS_RULE:
        fragment = identifier_fragment(meta.selector or "")
        return f"css-{fragment}" if fragment else f"css-L{chunk.line_start}"
    if chunk.type is ChunkType.JS_FUNCTION:
        return f"fn-{meta.function_name}" if meta.function_name else f"fn-L{chunk.line_start}"
    if meta.node_type == "json_key" and meta.setting_id:
        return f"json-{identifier_fragment(meta.setting_id)}"
    if chunk.line_start > 0:
        return f"block-L{chunk.line_start}"
    return f"chunk-{index}"


def feature_description(chunk: Chunk) -> str:
    meta = chunk.metadata
    if chunk.type is ChunkType.SCHEMA_SETTING:
        label = meta.setting_label or meta.setting_id
        return f"Schema setting: {label} ({meta.setting_type or 'unknown'})"
    if chunk.type is ChunkType.SCHEMA_BLOCK:
        return f"Schema block: {meta.setting_label or meta.setting_id}"
    if chunk.type is ChunkType.SCHEMA_PRESET:
        return f"Schema preset: {meta.setting_label}"
    if chunk.type is ChunkType.RENDER_CALL:
        return f"Renders {meta.render_target}"
    if chunk.type is ChunkType.LIQUID_BLOCK:
        condition = f" {meta.condition_expression}" if meta.condition_expression else ""
        return f"Liquid {meta.node_type}{condition} (lines {chunk.line_start}-{chunk.line_end})"
    if chunk.type is ChunkType.CSS_RULE:
        return f"CSS rule: {meta.selector}" if meta.selector else f"CSS {meta.node_type or 'rule'}"
    if chunk.type is ChunkType.JS_FUNCTION:
        kind = "Class" if meta.node_type == "class_declaration" else "Function"
        return f"{kind}: {meta.function_name or 'anonymous'}"
    if meta.node_type == "json_key":
        return f"JSON key: {meta.setting_id}"
    if meta.node_type == "schema_raw":
        return "Schema (unparsed)"
    return f"Code block (lines {chunk.line_start}-{chunk.line_end})"


def feature_keywords(chunk: Chunk) -> List[str]:
    meta = chunk.metadata
    candidates: List[str] = []
    for value in (meta.setting_id, meta.setting_label, meta.setting_type, meta.function_name, meta.render_target):
        if value:
            candidates.append(value)
    candidates.extend(meta.references)
    candidates.extend(meta.html_classes)
    candidates.extend(meta.filter_names)
    if meta.selector:
        candidates.append(meta.selector)
    seen: Dict[str, None] = {}
    for candidate in candidates:
        keyword = candidate.strip().lower()
        if keyword and keyword not in seen:
            seen[keyword] = None
    return list(seen)[:MAX_KEYWORDS]


def build_features(chunks: Sequence[Chunk]) -> Dict[str, Feature]:
    """Key every chunk; colliding slugs are disambiguated by their first line."""
    features: Dict[str, Feature] = {}
    for index, chunk in enumerate(chunks):
        slug = feature_slug(chunk, index)
        if slug in features:
            slug = f"{slug}-L{chunk.line_start}"
            if slug in features:
                slug = f"{slug}-{index}"
        features[slug] = Feature(
            lines=(chunk.line_start, chunk.line_end),
            description=feature_description(chunk),
            keywords=feature_keywords(chunk),
        )
    return features


__all__ = ["build_features", "feature_description", "feature_keywords", "feature_slug"]
