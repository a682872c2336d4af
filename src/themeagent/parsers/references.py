"""Outgoing file references detected in theme sources."""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional

from ..memory.files import is_stub_content

RENDER_TAG = re.compile(r"\{%-?\s*(?:render|include)\s+['\"]([^'\"]+)['\"]")
SECTION_TAG = re.compile(r"\{%-?\s*section\s+['\"]([^'\"]+)['\"]")
ASSET_TAG = re.compile(r"\{\{-?\s*['\"]([^'\"]+)['\"]\s*\|\s*asset_url")
JSON_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|[{}\[\]:]')


def detect_references(path: str, content: str) -> List[str]:
    """Return the theme paths ``path`` depends on, in first-seen order."""
    if not content or is_stub_content(content):
        return []
    found: List[str] = []
    lowered = path.lower()
    if lowered.endswith(".liquid"):
        found.extend(f"snippets/{name}.liquid" for name in RENDER_TAG.findall(content))
        found.extend(f"sections/{name}.liquid" for name in SECTION_TAG.findall(content))
        found.extend(f"assets/{name}" for name in ASSET_TAG.findall(content))
    elif lowered.endswith(".json") and (lowered.startswith("templates/") or lowered.startswith("sections/")):
        found.extend(f"sections/{name}.liquid" for name in section_types(content))
    return list(dict.fromkeys(found))


def section_types(content: str) -> List[str]:
    """Section ``type`` values of a JSON template or section group."""
    body = _strip_leading_comment(content)
    try:
        document: Any = json.loads(body)
    except ValueError:
        return scan_section_types(body)
    if not isinstance(document, dict):
        return []
    sections = document.get("sections")
    if not isinstance(sections, dict):
        return []
    types: List[str] = []
    for section in sections.values():
        if isinstance(section, dict) and isinstance(section.get("type"), str):
            types.append(section["type"])
    return types


def scan_section_types(content: str) -> List[str]:
    """Lexical fallback for JSON that does not parse: collect section-level ``type`` values.

    Only ``type`` keys sitting directly inside an entry of the top-level
    ``sections`` object count, so nested block types are ignored.
    """
    tokens = [match.group(0) for match in JSON_TOKEN.finditer(content)]
    types: List[str] = []
    depth = 0
    sections_depth: Optional[int] = None
    for index, token in enumerate(tokens):
        if token in ("{", "["):
            depth += 1
        elif token in ("}", "]"):
            if depth == sections_depth:
                sections_depth = None
            depth -= 1
        elif token == '"sections"' and depth == 1 and tokens[index + 1 : index + 3] == [":", "{"]:
            sections_depth = depth + 1
        elif (
            token == '"type"'
            and sections_depth is not None
            and depth == sections_depth + 1
            and tokens[index + 1 : index + 2] == [":"]
            and tokens[index + 2 : index + 3]
            and tokens[index + 2].startswith('"')
        ):
            types.append(tokens[index + 2][1:-1])
    return types


def _strip_leading_comment(content: str) -> str:
    stripped = content.lstrip()
    if stripped.startswith("/*"):
        end = stripped.find("*/")
        if end >= 0:
            return stripped[end + 2 :]
    return stripped


__all__ = ["ASSET_TAG", "RENDER_TAG", "SECTION_TAG", "detect_references", "scan_section_types", "section_types"]
