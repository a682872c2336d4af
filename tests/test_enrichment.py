from __future__ import annotations

from typing import List, Mapping, Sequence

import pytest

from themeagent.memory.files import make_file_record
from themeagent.memory.schema import FileRecord
from themeagent.models.offline import OfflineProvider
from themeagent.theme_map.enrichment import (
    ModelSummarizer,
    SummaryRequest,
    clean_orphan_summaries,
    enrich_theme_map,
    pending_summaries,
)
from themeagent.theme_map.indexer import index_theme


class RecordingSummarizer:
    def __init__(self) -> None:
        self.batches: List[List[str]] = []

    def summarize(self, batch: Sequence[SummaryRequest]) -> Mapping[str, str]:
        self.batches.append([item.path for item in batch])
        return {item.path: f"Summary of {item.path}" for item in batch}


class FailingSummarizer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("model offline")

    def summarize(self, batch: Sequence[SummaryRequest]) -> Mapping[str, str]:
        raise self.error


def test_offline_summaries_attach_to_every_file(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)

    enriched = enrich_theme_map(theme_map, theme_files, ModelSummarizer(OfflineProvider()), batch_size=3)

    header = enriched.files["sections/header.liquid"]
    assert enriched.version == theme_map.version + 1
    assert header.summary is not None
    assert header.summary.startswith("Header section.")
    assert "Defines" in header.summary
    assert all(entry.summary for entry in enriched.files.values())
    assert pending_summaries(enriched, theme_files) == []


def test_only_changed_files_are_resummarized(theme_files: List[FileRecord]) -> None:
    summarizer = RecordingSummarizer()
    theme_map = enrich_theme_map(index_theme("demo", theme_files), theme_files, summarizer)
    summarizer.batches.clear()

    changed = [
        make_file_record(file.path, file.content + "\n/* tweak */\n") if file.path == "assets/header.css" else file
        for file in theme_files
    ]
    updated = enrich_theme_map(theme_map, changed, summarizer)

    assert summarizer.batches == [["assets/header.css"]]
    assert updated.files["assets/header.css"].summary == "Summary of assets/header.css"


def test_batches_respect_batch_size(theme_files: List[FileRecord]) -> None:
    summarizer = RecordingSummarizer()
    theme_map = index_theme("demo", theme_files)

    enrich_theme_map(theme_map, theme_files, summarizer, batch_size=2)

    assert all(len(batch) <= 2 for batch in summarizer.batches)
    assert sum(len(batch) for batch in summarizer.batches) == len(pending_summaries(theme_map, theme_files))


@pytest.mark.parametrize(
    "error",
    [RuntimeError("model offline"), ConnectionError("summarizer unreachable"), KeyError("path"), TypeError("bad batch")],
)
def test_failed_batches_leave_the_map_untouched(
    theme_files: List[FileRecord], caplog: pytest.LogCaptureFixture, error: Exception
) -> None:
    theme_map = index_theme("demo", theme_files)

    result = enrich_theme_map(theme_map, theme_files, FailingSummarizer(error))

    assert result is theme_map
    assert "Summary batch" in caplog.text


def test_orphaned_entries_are_dropped(theme_files: List[FileRecord]) -> None:
    theme_map = index_theme("demo", theme_files)
    live = [file.path for file in theme_files if file.path != "assets/cart.js"]

    cleaned = clean_orphan_summaries(theme_map, live)

    assert "assets/cart.js" not in cleaned.files
    assert cleaned.version == theme_map.version + 1
    assert clean_orphan_summaries(cleaned, live) is cleaned
