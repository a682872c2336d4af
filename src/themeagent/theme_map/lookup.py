"""Score theme-map files against a natural-language request."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from ..memory.schema import ThemeMap, ThemeMapFile

DEFAULT_MAX_TARGETS = 15
MAX_RELATED = 10
CONFIDENT_SCORE = 3.0
MAX_FEATURES_PER_TARGET = 5

PATH_MENTION_SCORE = 10.0
PURPOSE_TOKEN_SCORE = 1.0
PATTERN_TOKEN_SCORE = 0.5
DESCRIPTION_TOKEN_SCORE = 2.0
KEYWORD_TOKEN_SCORE = 3.0

_TOKEN_STRIP = re.compile(r"[^a-z0-9_\-./]")

CONCEPT_EXPANSION: Dict[str, Tuple[str, ...]] = {
    "bigger": ("size", "width", "height", "padding", "font-size", "scale"),
    "smaller": ("size", "width", "height", "padding", "font-size", "scale"),
    "color": ("color", "background", "colour", "scheme", "text-color"),
    "colour": ("color", "background", "scheme"),
    "broken": ("error", "fix", "bug", "issue"),
    "slow": ("performance", "lazy", "loading", "defer"),
    "hide": ("display", "hidden", "visibility", "none"),
    "show": ("display", "visible", "block"),
    "spacing": ("padding", "margin", "gap"),
    "text": ("heading", "title", "content", "label", "font"),
    "image": ("img", "image", "media", "picture", "image_url"),
    "mobile": ("media", "max-width", "breakpoint", "responsive"),
    "animation": ("transition", "animate", "keyframes", "transform"),
    "cart": ("cart", "drawer", "checkout", "line_item"),
    "slider": ("slider", "carousel", "slideshow", "swiper"),
    "font": ("font", "typography", "font-family", "font-size"),
    "menu": ("menu", "navigation", "nav", "link_list"),
    "footer": ("footer", "bottom"),
    "header": ("header", "announcement", "logo", "nav"),
    "price": ("price", "money", "compare_at_price"),
    "button": ("button", "btn", "cta"),
}


@dataclass(frozen=True)
class IntentBoost:
    """Score bonus for files matching a regex-detected request intent."""

    name: str
    trigger: Pattern[str]
    path_boosts: Tuple[Tuple[Pattern[str], float], ...] = ()
    keywords: Tuple[str, ...] = ()
    keyword_boost: float = 0.0


INTENT_BOOSTS: Tuple[IntentBoost, ...] = (
    IntentBoost(
        "styling",
        re.compile(r"\b(style|styling|color|colour|font|bigger|smaller|spacing|padding|margin|css|look)\b", re.I),
        ((re.compile(r"^assets/.*\.(css|scss)(\.liquid)?$"), 5.0),),
        ("font-size", "padding", "margin", "color", "background", "width", "height"),
        3.0,
    ),
    IntentBoost(
        "fixing",
        re.compile(r"\b(fix|broken|bug|error|not working|doesn'?t work|issue)\b", re.I),
        ((re.compile(r"^assets/.*\.js(\.liquid)?$"), 4.0),),
        ("function", "addeventlistener", "fetch", "click", "submit"),
        3.0,
    ),
    IntentBoost(
        "adding",
        re.compile(r"\b(add|create|new|insert|include)\b", re.I),
        (
            (re.compile(r"^templates/.*\.json$"), 4.0),
            (re.compile(r"^sections/.*\.liquid$"), 3.0),
        ),
    ),
    IntentBoost(
        "removing",
        re.compile(r"\b(remove|hide|delete|get rid of|disable)\b", re.I),
        (),
        ("display-none", "display", "hidden", "visibility", "opacity"),
        4.0,
    ),
    IntentBoost(
        "text",
        re.compile(r"\b(text|wording|copy|heading|title|label|translation|rename)\b", re.I),
        (
            (re.compile(r"^sections/.*\.liquid$"), 4.0),
            (re.compile(r"^locales/.*\.json$"), 4.0),
        ),
        ("content", "heading", "title", "text", "label"),
        3.0,
    ),
)


@dataclass(frozen=True)
class MatchedFeature:
    slug: str
    lines: Tuple[int, int]
    description: str
    hits: int


@dataclass(frozen=True)
class LookupTarget:
    path: str
    purpose: str
    score: float
    features: Tuple[MatchedFeature, ...] = ()
    patterns: Tuple[str, ...] = ()
    summary: Optional[str] = None


@dataclass(frozen=True)
class LookupResult:
    targets: Tuple[LookupTarget, ...]
    related: Tuple[str, ...]
    conventions: Tuple[str, ...]
    confident: bool
    framework: Optional[str] = None
    expanded_tokens: Tuple[str, ...] = field(default=())


def tokenize(text: str) -> List[str]:
    cleaned = _TOKEN_STRIP.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 1]


def expand_query(tokens: Sequence[str]) -> List[str]:
    """Append concept synonyms for known vague words, preserving order."""
    expanded: Dict[str, None] = dict.fromkeys(tokens)
    for token in tokens:
        for synonym in CONCEPT_EXPANSION.get(token, ()):
            expanded.setdefault(synonym, None)
    return list(expanded)


def _mentions(name: str, lowered_query: str) -> bool:
    """True when ``name`` appears in the query without being part of a longer file name."""
    pattern = r"(?<![a-z0-9_\-.])" + re.escape(name) + r"(?![a-z0-9_\-]|\.[a-z0-9])"
    return re.search(pattern, lowered_query) is not None


def detect_intents(query: str) -> List[IntentBoost]:
    return [intent for intent in INTENT_BOOSTS if intent.trigger.search(query)]


def score_file(
    entry: ThemeMapFile,
    query: str,
    tokens: Sequence[str],
    intents: Sequence[IntentBoost],
) -> Tuple[float, List[MatchedFeature]]:
    lowered_query = query.lower()
    path = entry.path.lower()
    basename = PurePosixPath(path).name
    score = 0.0
    if _mentions(path, lowered_query) or (basename and _mentions(basename, lowered_query)):
        score += PATH_MENTION_SCORE

    narrative = f"{entry.purpose} {entry.summary or ''}".lower()
    pattern_text = " ".join(entry.patterns).lower()
    for token in tokens:
        if token in narrative:
            score += PURPOSE_TOKEN_SCORE
        if token in pattern_text:
            score += PATTERN_TOKEN_SCORE

    matched: List[MatchedFeature] = []
    for slug, feature in entry.features.items():
        if feature.is_stale:
            continue
        description = feature.description.lower()
        hits = 0
        for token in tokens:
            if token in description:
                score += DESCRIPTION_TOKEN_SCORE
                hits += 1
            if any(token in keyword for keyword in feature.keywords):
                score += KEYWORD_TOKEN_SCORE
                hits += 1
        if hits:
            matched.append(MatchedFeature(slug, (feature.lines[0], feature.lines[1]), feature.description, hits))
    matched.sort(key=lambda item: (-item.hits, item.lines[0], item.slug))

    for intent in intents:
        for pattern, boost in intent.path_boosts:
            if pattern.search(entry.path):
                score += boost
        if intent.keyword_boost and _has_keyword(entry, intent.keywords):
            score += intent.keyword_boost
    return score, matched


def lookup_theme_map(
    theme_map: ThemeMap,
    query: str,
    *,
    active_file: Optional[str] = None,
    max_targets: int = DEFAULT_MAX_TARGETS,
    confident_threshold: float = CONFIDENT_SCORE,
) -> LookupResult:
    """Rank indexed files for ``query``; deterministic for a given map and query."""
    tokens = expand_query(tokenize(query))
    intents = detect_intents(query)
    scored: List[Tuple[float, str, List[MatchedFeature]]] = []
    for path in sorted(theme_map.files):
        score, features = score_file(theme_map.files[path], query, tokens, intents)
        if score > 0:
            scored.append((score, path, features))
    scored.sort(key=lambda item: (-item[0], item[1]))

    if active_file:
        for index, item in enumerate(scored):
            if item[1] == active_file:
                scored.insert(0, scored.pop(index))
                break

    targets: List[LookupTarget] = []
    for score, path, features in scored[:max_targets]:
        entry = theme_map.files[path]
        targets.append(
            LookupTarget(
                path=path,
                purpose=entry.purpose,
                score=score,
                features=tuple(features[:MAX_FEATURES_PER_TARGET]),
                patterns=tuple(entry.patterns),
                summary=entry.summary,
            )
        )

    target_paths = {target.path for target in targets}
    related: Dict[str, None] = {}
    for target in targets:
        entry = theme_map.files[target.path]
        for neighbour in (*entry.depends_on, *entry.rendered_by):
            if neighbour not in target_paths:
                related.setdefault(neighbour, None)
    top_score = max((target.score for target in targets), default=0.0)
    return LookupResult(
        targets=tuple(targets),
        related=tuple(list(related)[:MAX_RELATED]),
        conventions=tuple(theme_map.global_patterns),
        confident=top_score >= confident_threshold,
        framework=theme_map.framework,
        expanded_tokens=tuple(tokens),
    )


def format_lookup_result(result: LookupResult) -> str:
    """Render a lookup as markdown for inclusion in a model prompt."""
    if not result.targets:
        return "No matching files found in the theme map."
    lines = ["## Theme map lookup"]
    if result.framework:
        lines.append(f"Framework: {result.framework}")
    lines.append("")
    lines.append("### Targets")
    for target in result.targets:
        lines.append(f"- `{target.path}` ({target.purpose}, score {target.score:g})")
        if target.summary:
            lines.append(f"  {target.summary}")
        for feature in target.features:
            start, end = feature.lines
            lines.append(f"  - {feature.description} [lines {start}-{end}]")
    if result.related:
        lines.append("")
        lines.append("### Related")
        lines.extend(f"- `{path}`" for path in result.related)
    if result.conventions:
        lines.append("")
        lines.append("### Conventions")
        lines.extend(f"- {pattern}" for pattern in result.conventions)
    if not result.confident:
        lines.append("")
        lines.append("_Low confidence: confirm the target file before editing._")
    return "\n".join(lines)


def _has_keyword(entry: ThemeMapFile, keywords: Sequence[str]) -> bool:
    for feature in entry.features.values():
        for keyword in feature.keywords:
            if any(candidate in keyword for candidate in keywords):
                return True
    return False


__all__ = [
    "CONCEPT_EXPANSION",
    "INTENT_BOOSTS",
    "LookupResult",
    "LookupTarget",
    "MatchedFeature",
    "detect_intents",
    "expand_query",
    "format_lookup_result",
    "lookup_theme_map",
    "score_file",
    "tokenize",
]
