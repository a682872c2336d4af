from __future__ import annotations

from typing import List, Sequence

import pytest

from themeagent.context.engine import ContextEngine, EngineRegistry, query_words, to_segments
from themeagent.memory.files import make_file_record
from themeagent.memory.schema import FileRecord


def _sized(path: str, tokens: int) -> FileRecord:
    return make_file_record(path, "x" * (tokens * 4))


class StaticLoader:
    def __init__(self, records: Sequence[FileRecord]) -> None:
        self.records = list(records)
        self.requests: List[List[str]] = []

    def load_content(self, ids: Sequence[str]) -> List[FileRecord]:
        self.requests.append(list(ids))
        return [record for record in self.records if record.id in ids]


def test_budget_keeps_first_file_and_stops_at_overflow() -> None:
    engine = ContextEngine(max_tokens=1000)
    engine.index_files([_sized("snippets/a.liquid", 600), _sized("snippets/b.liquid", 700), _sized("snippets/c.liquid", 10)])

    result = engine.build_context(["snippets/b.liquid", "snippets/c.liquid"], priority=["snippets/a.liquid"])

    assert result.file_ids == ["snippets/a.liquid"]
    assert result.budget.used_tokens == 600
    assert result.budget.remaining == 400
    assert result.excluded == ("snippets/b.liquid", "snippets/c.liquid")


def test_selection_never_exceeds_budget(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    for budget in (0, 20, 60, 150, 400):
        result = engine.select_relevant_files("update the header menu and cart script", max_tokens=budget)
        assert result.budget.used_tokens <= budget
        assert sum(engine.metadata(file.id).token_estimate for file in result.files) == result.budget.used_tokens


def test_dependencies_are_closed_breadth_first(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    closure = engine.resolve_with_dependencies(["layout/theme.liquid"])

    assert closure[0] == "layout/theme.liquid"
    assert set(closure) == {
        "layout/theme.liquid",
        "sections/header.liquid",
        "assets/cart.js",
        "snippets/logo.liquid",
        "assets/header.css",
    }
    assert closure.index("sections/header.liquid") < closure.index("snippets/logo.liquid")
    assert engine.resolve_with_dependencies(["layout/theme.liquid"]) == closure


def test_fuzzy_match_prefers_topic_and_name_hits(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    matches = engine.fuzzy_match("header")

    assert matches[0].path == "sections/header.liquid"
    assert "assets/header.css" in [match.path for match in matches]
    assert engine.fuzzy_match("   ") == []


def test_recency_breaks_otherwise_equal_scores(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    matches = engine.fuzzy_match("product")

    assert [match.path for match in matches[:2]] == ["templates/product.json", "sections/main-product.liquid"]
    assert matches[0].score == matches[1].score + 1


def test_learned_term_mappings_boost_files(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)
    engine.load_term_mappings({"buy button": ["snippets/price.liquid"], "  ": ["ignored"]})

    matches = engine.fuzzy_match("make the buy button bigger")

    assert matches[0].path == "snippets/price.liquid"


def test_file_references_are_extracted_from_messages(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    found = engine.extract_file_references("Please fix sections/header.liquid, then {% render 'price' %}.")

    assert found == ["sections/header.liquid", "snippets/price.liquid"]
    assert engine.find_by_path("./cart.js") is not None


def test_active_file_is_packed_first(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    result = engine.select_relevant_files("make the header sticky", active_file_id="assets/cart.js")

    assert result.file_ids[0] == "assets/cart.js"
    assert "sections/header.liquid" in result.file_ids


def test_stub_files_are_hydrated_before_packing() -> None:
    real = make_file_record("snippets/card.liquid", "{% render 'badge' %}\n<div class=\"card\"></div>\n")
    loader = StaticLoader([real])
    engine = ContextEngine(loader=loader)
    engine.index_files(
        [
            make_file_record("snippets/card.liquid", "[52 chars]"),
            make_file_record("snippets/badge.liquid", "<span class=\"badge\"></span>\n"),
        ]
    )

    result = engine.build_context(["snippets/card.liquid", "snippets/missing.liquid"])

    assert loader.requests == [["snippets/card.liquid"]]
    assert engine.get_file("snippets/card.liquid") == real
    assert result.files[0].content == real.content
    assert result.missing == ("snippets/missing.liquid",)


class BrokenLoader:
    def load_content(self, ids: Sequence[str]) -> List[FileRecord]:
        raise ValueError("content service returned garbage")


def test_failing_loader_packs_stubs_as_they_are(caplog: pytest.LogCaptureFixture) -> None:
    stub = make_file_record("snippets/card.liquid", "[52 chars]")
    engine = ContextEngine(loader=BrokenLoader())
    engine.index_files([stub])

    result = engine.build_context(["snippets/card.liquid"])

    assert result.file_ids == ["snippets/card.liquid"]
    assert result.files[0].content == stub.content
    assert "Could not hydrate 1 stub file" in caplog.text


def test_search_hits_join_at_lowest_priority(theme_files: List[FileRecord]) -> None:
    engine = ContextEngine()
    engine.index_files(theme_files)

    result = engine.select_relevant_files_with_search("money", active_file_id="assets/header.css")

    assert result.file_ids[0] == "assets/header.css"
    assert "snippets/price.liquid" in [hit.file_id for hit in result.search_results]
    assert "snippets/price.liquid" in result.file_ids


def test_engine_from_config_reads_budget() -> None:
    engine = ContextEngine.from_config({"context": {"token_budget": 500}, "search": {"vector_enabled": False}})

    assert engine.max_tokens == 500


def test_registry_reuses_and_evicts_engines(theme_files: List[FileRecord]) -> None:
    registry = EngineRegistry(capacity=1)

    first = registry.engine_for("one", theme_files)
    assert registry.engine_for("one") is first
    assert len(first.files) == len(theme_files)

    registry.engine_for("two")
    assert "one" not in registry
    assert registry.get("two") is not None
    registry.evict("two")
    assert len(registry) == 0


def test_query_helpers() -> None:
    assert to_segments("sections/main-product.liquid") == ["sections", "main", "product", "liquid"]
    assert query_words("Fix the header, please!") == ["fix", "header"]
