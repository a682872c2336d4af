from __future__ import annotations

from typing import List

from themeagent.memory.files import make_file_record
from themeagent.memory.schema import FileRecord
from themeagent.theme_map.indexer import index_theme
from themeagent.theme_map.lookup import expand_query, format_lookup_result, lookup_theme_map, tokenize


def test_exact_basename_ranks_first_and_is_confident(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    result = lookup_theme_map(theme_map, "cart.js")

    assert result.targets[0].path == "assets/cart.js"
    assert result.confident is True


def test_basename_suffix_of_another_file_does_not_match() -> None:
    files = [
        make_file_record("snippets/card.liquid", "<div class=\"card\">{{ product.title }}</div>\n"),
        make_file_record("snippets/product-card.liquid", "<div class=\"product-card\">{{ product.title }}</div>\n"),
    ]
    theme_map = index_theme("demo", files)

    result = lookup_theme_map(theme_map, "product-card.liquid")

    assert result.targets[0].path == "snippets/product-card.liquid"
    scores = {target.path: target.score for target in result.targets}
    assert scores.get("snippets/card.liquid", 0.0) < scores["snippets/product-card.liquid"]


def test_lookup_is_deterministic(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    first = lookup_theme_map(theme_map, "make the header menu color bigger")
    second = lookup_theme_map(theme_map, "make the header menu color bigger")

    assert [(target.path, target.score) for target in first.targets] == [
        (target.path, target.score) for target in second.targets
    ]
    assert first == second


def test_styling_request_reaches_stylesheet_and_section(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    result = lookup_theme_map(theme_map, "change the header color")
    paths = [target.path for target in result.targets]

    assert "assets/header.css" in paths
    assert "sections/header.liquid" in paths
    assert not set(result.related) & set(paths)


def test_active_file_is_promoted(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    result = lookup_theme_map(theme_map, "header logo", active_file="snippets/logo.liquid")

    assert result.targets[0].path == "snippets/logo.liquid"


def test_matched_features_carry_line_ranges(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    result = lookup_theme_map(theme_map, "show_menu setting")
    header = next(target for target in result.targets if target.path == "sections/header.liquid")

    lines = {feature.slug: feature.lines for feature in header.features}
    assert lines["setting-show_menu"] == (10, 20)
    assert lines["if-L3"] == (3, 7)
    assert header.features[0].slug == "if-L3"


def test_stale_features_are_not_matched(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)
    entry = theme_map.files["assets/cart.js"]
    features = {slug: feature.model_copy(update={"lines": (0, 0)}) for slug, feature in entry.features.items()}
    files = dict(theme_map.files)
    files["assets/cart.js"] = entry.model_copy(update={"features": features})
    stale = theme_map.model_copy(update={"files": files})

    result = lookup_theme_map(stale, "removefromcart")

    assert all(target.path != "assets/cart.js" for target in result.targets)


def test_unmatched_query_reports_nothing(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    result = lookup_theme_map(theme_map, "qqqq zzzz")

    assert result.targets == ()
    assert result.confident is False
    assert format_lookup_result(result) == "No matching files found in the theme map."


def test_format_lists_targets_and_features(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    text = format_lookup_result(lookup_theme_map(theme_map, "cart.js addtocart"))

    assert text.startswith("## Theme map lookup")
    assert "- `assets/cart.js` (cart script" in text
    assert "Function: addToCart [lines 1-3]" in text


def test_query_expansion_adds_synonyms() -> None:
    tokens = expand_query(tokenize("Make it bigger!"))

    assert tokens[:3] == ["make", "it", "bigger"]
    assert "font-size" in tokens
    assert len(tokens) == len(set(tokens))
