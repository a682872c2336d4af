"""Domain keyword to path-glob table used to boost fuzzy matches."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Pattern, Sequence, Tuple

DEFAULT_TOPIC_BOOST = 8


@dataclass(frozen=True)
class ThemeTopic:
    name: str
    keywords: Tuple[str, ...]
    patterns: Tuple[str, ...]
    boost: int = DEFAULT_TOPIC_BOOST


THEME_TOPIC_MAP: Tuple[ThemeTopic, ...] = (
    ThemeTopic(
        "product",
        ("product", "products", "pdp", "variant", "variants", "add to cart", "price"),
        ("sections/main-product*", "sections/product*", "snippets/product*", "templates/product*", "assets/product*"),
    ),
    ThemeTopic(
        "image",
        ("image", "images", "photo", "picture", "gallery", "media", "thumbnail", "logo"),
        ("snippets/*image*", "snippets/*media*", "sections/*gallery*", "sections/*image*", "assets/*media*"),
        boost=10,
    ),
    ThemeTopic(
        "collection",
        ("collection", "collections", "catalog", "filter", "filters", "facets", "plp"),
        ("sections/main-collection*", "sections/collection*", "snippets/facets*", "templates/collection*"),
    ),
    ThemeTopic(
        "cart",
        ("cart", "basket", "checkout", "drawer", "line item"),
        ("sections/*cart*", "snippets/*cart*", "templates/cart*", "assets/*cart*"),
    ),
    ThemeTopic(
        "header",
        ("header", "navigation", "nav", "menu", "announcement", "mega menu"),
        ("sections/header*", "sections/announcement*", "snippets/header*", "snippets/*menu*"),
    ),
    ThemeTopic(
        "footer",
        ("footer", "newsletter", "social", "copyright"),
        ("sections/footer*", "snippets/footer*", "snippets/social*"),
    ),
    ThemeTopic(
        "layout",
        ("layout", "page structure", "wrapper", "body", "head"),
        ("layout/*",),
    ),
    ThemeTopic(
        "blog",
        ("blog", "article", "articles", "post", "posts"),
        ("sections/main-blog*", "sections/main-article*", "templates/blog*", "templates/article*", "snippets/article*"),
    ),
    ThemeTopic(
        "search",
        ("search", "predictive search", "results"),
        ("sections/main-search*", "sections/predictive-search*", "templates/search*", "assets/*search*"),
    ),
    ThemeTopic(
        "page",
        ("page", "about", "contact", "faq"),
        ("sections/main-page*", "templates/page*", "sections/contact*"),
    ),
    ThemeTopic(
        "css",
        ("css", "style", "styles", "stylesheet", "color", "colors", "font", "spacing"),
        ("assets/*.css", "assets/*.scss", "assets/*.css.liquid"),
    ),
    ThemeTopic(
        "js",
        ("javascript", "js", "script", "event", "click", "interactive", "animation"),
        ("assets/*.js", "assets/*.js.liquid"),
    ),
)


@lru_cache(maxsize=512)
def _glob_regex(pattern: str) -> Pattern[str]:
    body = re.escape(pattern).replace(r"\*", ".*")
    return re.compile(r"(^|/)" + body + "$", re.IGNORECASE)


def match_glob_pattern(path: str, pattern: str) -> bool:
    """``*`` matches any run of characters; the pattern anchors at a path segment."""
    return bool(_glob_regex(pattern).search(path))


@lru_cache(maxsize=256)
def _keyword_regex(keyword: str) -> Pattern[str]:
    return re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE)


def match_theme_topics(query: str, topics: Sequence[ThemeTopic] = THEME_TOPIC_MAP) -> List[ThemeTopic]:
    return [topic for topic in topics if any(_keyword_regex(keyword).search(query) for keyword in topic.keywords)]


def topic_boost(path: str, topics: Sequence[ThemeTopic]) -> int:
    """Sum of boosts of every topic with at least one glob matching ``path``."""
    return sum(
        topic.boost for topic in topics if any(match_glob_pattern(path, pattern) for pattern in topic.patterns)
    )


__all__ = [
    "THEME_TOPIC_MAP",
    "ThemeTopic",
    "match_glob_pattern",
    "match_theme_topics",
    "topic_boost",
]
