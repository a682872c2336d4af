"""Naming conventions, entry points and framework detection for a theme."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..parsers.chunks import Chunk, ChunkType

_CLASS_PREFIX = re.compile(r"\.([a-zA-Z_][a-zA-Z0-9_]*)-")
_FILTER = re.compile(r"\|\s*([a-z_]+)")

MIN_PREFIX_RULES = 3
MIN_PREFIX_FILES = 2
MAX_LISTED_FILTERS = 5


def class_prefixes(chunks: Sequence[Chunk]) -> Counter:
    """Count, per class-name prefix, the number of rules whose selector uses it."""
    counts: Counter = Counter()
    for chunk in chunks:
        if chunk.type is not ChunkType.CSS_RULE or not chunk.metadata.selector:
            continue
        counts.update(set(_CLASS_PREFIX.findall(chunk.metadata.selector)))
    return counts


def extract_patterns(path: str, content: str, chunks: Sequence[Chunk]) -> List[str]:
    patterns: List[str] = []
    prefixes = class_prefixes(chunks)
    for prefix, count in sorted(prefixes.items(), key=lambda item: (-item[1], item[0])):
        if count >= MIN_PREFIX_RULES:
            patterns.append(f"{prefix}- class prefix ({count} rules)")

    if path.endswith(".liquid") and not path.endswith((".css.liquid", ".js.liquid")):
        if "{% schema" in content or "{%- schema" in content:
            patterns.append("has schema")
        if "<script" in content or "{% javascript" in content:
            patterns.append("inline JavaScript")
        if "<style" in content or "{% style" in content or "{% stylesheet" in content:
            patterns.append("inline stylesheet")
        filters = Counter(_FILTER.findall(content))
        if filters:
            common = [name for name, _ in sorted(filters.items(), key=lambda item: (-item[1], item[0]))]
            patterns.append("uses filters: " + ", ".join(common[:MAX_LISTED_FILTERS]))
    return patterns


def compute_global_patterns(prefixes_by_file: Dict[str, Iterable[str]]) -> List[str]:
    """Class prefixes shared by at least two files."""
    spread: Counter = Counter()
    for prefixes in prefixes_by_file.values():
        spread.update(set(prefixes))
    return [
        f"{prefix}- class prefix across {count} files"
        for prefix, count in sorted(spread.items(), key=lambda item: (-item[1], item[0]))
        if count >= MIN_PREFIX_FILES
    ]


def entry_points(paths: Iterable[str]) -> List[str]:
    return sorted(path for path in paths if path.startswith(("layout/", "templates/")))


@dataclass(frozen=True)
class FrameworkSignature:
    """Known theme family with the number of corroborating signals it needs."""

    name: str
    min_signals: int
    collect: Callable[[Sequence[str], Sequence[str]], List[str]]


def _t4s_signals(paths: Sequence[str], global_patterns: Sequence[str]) -> List[str]:
    signals = [f"file {path}" for path in paths if "t4s" in PurePosixPath(path).name.lower()]
    if any(pattern.startswith("t4s-") for pattern in global_patterns):
        signals.append("t4s- class prefix")
    return signals


def _prestige_signals(paths: Sequence[str], _: Sequence[str]) -> List[str]:
    return [f"file {path}" for path in paths if re.match(r"assets/prestige[.-]", path.lower())]


def _turbo_signals(paths: Sequence[str], _: Sequence[str]) -> List[str]:
    signals = [f"file {path}" for path in paths if path.lower().startswith("assets/") and "turbo" in path.lower()]
    includes = [path for path in paths if path.startswith("snippets/include-")]
    if len(includes) >= 3:
        signals.append(f"{len(includes)} include-* snippets")
    return signals


def _debut_signals(paths: Sequence[str], _: Sequence[str]) -> List[str]:
    known = set(paths)
    markers = ("snippets/product-card.liquid", "sections/collection-template.liquid")
    return [f"file {marker}" for marker in markers if marker in known]


def _dawn_signals(paths: Sequence[str], _: Sequence[str]) -> List[str]:
    known = set(paths)
    signals: List[str] = []
    main_sections = [path for path in paths if re.match(r"sections/main-[\w-]+\.liquid$", path)]
    if len(main_sections) >= 3:
        signals.append(f"{len(main_sections)} main-* sections")
    for marker in ("assets/global.js", "snippets/card-product.liquid", "assets/product-form.js"):
        if marker in known:
            signals.append(f"file {marker}")
    return signals


FRAMEWORKS: Tuple[FrameworkSignature, ...] = (
    FrameworkSignature("T4S", 3, _t4s_signals),
    FrameworkSignature("Prestige", 2, _prestige_signals),
    FrameworkSignature("Turbo", 2, _turbo_signals),
    FrameworkSignature("Debut", 2, _debut_signals),
    FrameworkSignature("Dawn", 2, _dawn_signals),
)


def detect_framework(
    paths: Sequence[str],
    global_patterns: Sequence[str],
    signatures: Sequence[FrameworkSignature] = FRAMEWORKS,
) -> Tuple[Optional[str], List[str]]:
    """Return the first framework whose signals reach its threshold."""
    ordered = sorted(paths)
    for signature in signatures:
        signals = signature.collect(ordered, global_patterns)
        if len(signals) >= signature.min_signals:
            return signature.name, signals
    return None, []


def prefix_names(counts: Counter) -> Set[str]:
    return {prefix for prefix, count in counts.items() if count > 0}


__all__ = [
    "FRAMEWORKS",
    "FrameworkSignature",
    "class_prefixes",
    "compute_global_patterns",
    "detect_framework",
    "entry_points",
    "extract_patterns",
    "prefix_names",
]
