"""Chunk records produced by the structural chunker."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ChunkType(str, Enum):
    """Kinds of structural regions recognised inside theme files."""

    SCHEMA_SETTING = "schema_setting"
    SCHEMA_BLOCK = "schema_block"
    SCHEMA_PRESET = "schema_preset"
    LIQUID_BLOCK = "liquid_block"
    RENDER_CALL = "render_call"
    CSS_RULE = "css_rule"
    JS_FUNCTION = "js_function"
    CODE_BLOCK = "code_block"


@dataclass(frozen=True)
class ChunkMetadata:
    """Type-dependent details attached to a chunk; unused fields stay empty."""

    setting_id: Optional[str] = None
    setting_type: Optional[str] = None
    setting_label: Optional[str] = None
    selector: Optional[str] = None
    function_name: Optional[str] = None
    render_target: Optional[str] = None
    node_type: Optional[str] = None
    condition_expression: Optional[str] = None
    references: Tuple[str, ...] = ()
    filter_names: Tuple[str, ...] = ()
    html_classes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Chunk:
    """Immutable, line-ranged slice of a file (lines are 1-based, inclusive)."""

    type: ChunkType
    content: str
    file: str
    line_start: int
    line_end: int
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
