from __future__ import annotations

from typing import List

from themeagent.memory.files import make_file_record
from themeagent.memory.schema import FileRecord, ThemeMapStatus
from themeagent.theme_map.conventions import detect_framework
from themeagent.theme_map.graph import ThemeDependencyGraph
from themeagent.theme_map.indexer import (
    index_theme,
    infer_purpose,
    is_minified_or_generated,
    reindex_file,
    remove_file,
)


def _record(files: List[FileRecord], path: str) -> FileRecord:
    return next(record for record in files if record.path == path)


def test_index_theme_builds_structural_map(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    assert theme_map.version == 1
    assert theme_map.status is ThemeMapStatus.READY
    assert theme_map.file_count == len(theme_files)
    assert theme_map.entry_points == ["layout/theme.liquid", "templates/product.json"]
    assert theme_map.framework is None

    header = theme_map.files["sections/header.liquid"]
    assert header.purpose == "Header section"
    assert header.depends_on == ["snippets/logo.liquid", "assets/header.css"]
    assert header.rendered_by == ["layout/theme.liquid"]
    assert {"setting-show_menu", "setting-logo", "block-link", "preset-Default_header", "render-logo", "if-L3"} <= set(
        header.features
    )
    assert header.features["if-L3"].lines == (3, 7)
    assert "has schema" in header.patterns
    assert "uses filters: asset_url, default, stylesheet_tag" in header.patterns

    assert theme_map.files["templates/product.json"].depends_on == ["sections/main-product.liquid"]
    assert theme_map.files["sections/main-product.liquid"].rendered_by == ["templates/product.json"]
    assert "inline JavaScript" in theme_map.files["layout/theme.liquid"].patterns


def test_minified_and_stub_files_are_skipped(theme_files: List[FileRecord]) -> None:
    extra = [
        make_file_record("assets/vendor.min.js", "function a(){}\n"),
        make_file_record("assets/bundle.js", "x" * 10_001),
        make_file_record("assets/large.css", "[2048 chars]"),
    ]

    theme_map = index_theme("demo", [*theme_files, *extra])

    assert not {"assets/vendor.min.js", "assets/bundle.js", "assets/large.css"} & set(theme_map.files)


def test_generated_file_heuristics() -> None:
    assert is_minified_or_generated("assets/app.bundle.js", "")
    assert is_minified_or_generated("assets/app.js", "a" * 100_001)
    assert not is_minified_or_generated("assets/app.js", ("line\n" * 30_000))
    assert is_minified_or_generated("assets/app.js", "a" * 6_000 + "\n" + "b" * 6_000)
    assert not is_minified_or_generated("assets/app.js", "a" * 100)


def test_infer_purpose_prefers_schema_name() -> None:
    schema = '{% schema %}{"name": "Slideshow"}{% endschema %}'

    assert infer_purpose("sections/slideshow.liquid", schema) == "Slideshow section"
    assert infer_purpose("snippets/icon-cart.liquid", "") == "icon cart snippet"
    assert infer_purpose("layout/theme.liquid", "") == "theme layout"
    assert infer_purpose("assets/base.css", "") == "base stylesheet"
    assert infer_purpose("assets/global.js", "") == "global script"
    assert infer_purpose("assets/logo.svg", "") == "logo asset"
    assert infer_purpose("locales/en.default.json", "") == "en translations"


def test_reindex_with_identical_content_is_a_no_op(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)
    header = _record(theme_files, "sections/header.liquid")

    first = reindex_file(theme_map, header)
    second = reindex_file(first, make_file_record(header.path, header.content))

    assert first is theme_map
    assert second.version == theme_map.version


def test_reindex_changed_file_updates_neighbours(theme_files: List[FileRecord]) -> None:
    graph = ThemeDependencyGraph()
    theme_map = index_theme("demo", theme_files, graph=graph)
    header = _record(theme_files, "sections/header.liquid")
    edited = make_file_record(header.path, header.content.replace("render 'logo'", "render 'price'"))

    updated = reindex_file(theme_map, edited, graph=graph)

    assert updated.version == theme_map.version + 1
    assert updated.files["sections/header.liquid"].depends_on == ["snippets/price.liquid", "assets/header.css"]
    assert updated.files["snippets/logo.liquid"].rendered_by == []
    assert updated.files["snippets/price.liquid"].rendered_by == [
        "sections/header.liquid",
        "sections/main-product.liquid",
    ]


def test_full_rebuild_carries_summaries_of_known_files(theme_files: List[FileRecord]) -> None:
    first = index_theme("demo", theme_files)
    entry = first.files["assets/cart.js"]
    files = dict(first.files)
    files["assets/cart.js"] = entry.model_copy(update={"summary": "Cart helpers.", "summary_hash": entry.content_hash})
    summarized = first.model_copy(update={"files": files})

    rebuilt = index_theme("demo", theme_files, previous=summarized)

    assert rebuilt.version == 2
    assert rebuilt.files["assets/cart.js"].summary == "Cart helpers."


def test_remove_file_drops_entry_and_reverse_edges(theme_files: List[FileRecord]) -> None:
    graph = ThemeDependencyGraph()
    theme_map = index_theme("demo", theme_files, graph=graph)

    updated = remove_file(theme_map, "sections/header.liquid", graph=graph)

    assert "sections/header.liquid" not in updated.files
    assert updated.files["snippets/logo.liquid"].rendered_by == []
    assert updated.version == theme_map.version + 1
    assert remove_file(updated, "sections/missing.liquid") is updated


def test_framework_detection_needs_enough_signals() -> None:
    paths = [
        "sections/main-product.liquid",
        "sections/main-collection.liquid",
        "sections/main-cart.liquid",
        "assets/global.js",
    ]

    name, signals = detect_framework(paths, [])

    assert name == "Dawn"
    assert signals == ["3 main-* sections", "file assets/global.js"]
    assert detect_framework(["assets/global.js"], []) == (None, [])
