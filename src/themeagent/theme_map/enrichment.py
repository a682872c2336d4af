"""Optional natural-language summaries for theme-map files.

Summaries are keyed to the content hash they were produced from, so only
new or changed files are sent to the summarizer. A failed batch is logged
and skipped; it never invalidates the structural map.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Protocol, Sequence, Tuple

from ..memory.schema import FileRecord, ThemeMap
from ..models.offline import SUMMARY_TASK
from ..models.provider import (
    CompletionOptions,
    Message,
    ModelProvider,
    ProviderResponseError,
    call_with_retries,
    parse_json_payload,
)
from ..utils.hashing import content_hash

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 8
MAX_CONTENT_LENGTH = 4000

SYSTEM_PROMPT = (
    "You summarise files of an e-commerce theme. For every file you receive, write one or two "
    "plain sentences describing what it renders or controls. Answer with a single JSON object "
    "mapping each file path to its summary."
)


@dataclass(frozen=True)
class SummaryRequest:
    path: str
    purpose: str
    features: Tuple[str, ...]
    content: str
    content_hash: str


class Summarizer(Protocol):
    def summarize(self, batch: Sequence[SummaryRequest]) -> Mapping[str, str]:
        ...


class ModelSummarizer:
    """Summarizer backed by a :class:`ModelProvider` completion."""

    def __init__(self, provider: ModelProvider, *, max_attempts: int = 2, retry_delay: float = 0.5) -> None:
        self._provider = provider
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    def summarize(self, batch: Sequence[SummaryRequest]) -> Mapping[str, str]:
        prompt = "\n\n".join(
            f"### {item.path}\nPurpose: {item.purpose}\nFeatures: {', '.join(item.features) or 'none'}\n"
            f"```\n{item.content[:MAX_CONTENT_LENGTH]}\n```"
            for item in batch
        )
        options = CompletionOptions(
            system=SYSTEM_PROMPT,
            max_tokens=1024,
            metadata={
                "task": SUMMARY_TASK,
                "files": [
                    {"path": item.path, "purpose": item.purpose, "features": list(item.features)}
                    for item in batch
                ],
            },
        )
        messages = [Message(role="system", content=SYSTEM_PROMPT), Message(role="user", content=prompt)]
        result = call_with_retries(
            lambda: self._provider.complete(messages, options),
            max_attempts=self._max_attempts,
            retry_delay=self._retry_delay,
        )
        payload = parse_json_payload(result.content)
        if not isinstance(payload, dict):
            raise ProviderResponseError("Summary response must be a JSON object.")
        requested = {item.path for item in batch}
        return {str(path): str(text).strip() for path, text in payload.items() if path in requested and text}


def pending_summaries(theme_map: ThemeMap, files: Iterable[FileRecord]) -> List[SummaryRequest]:
    """Files present in the map whose summary is missing or out of date."""
    pending: List[SummaryRequest] = []
    for file in sorted(files, key=lambda record: record.path):
        entry = theme_map.files.get(file.path)
        if entry is None:
            continue
        digest = content_hash(file.content)
        if entry.summary and entry.summary_hash == digest:
            continue
        pending.append(
            SummaryRequest(
                path=file.path,
                purpose=entry.purpose,
                features=tuple(feature.description for feature in entry.features.values())[:12],
                content=file.content,
                content_hash=digest,
            )
        )
    return pending


def enrich_theme_map(
    theme_map: ThemeMap,
    files: Iterable[FileRecord],
    summarizer: Summarizer,
    *,
    batch_size: int = BATCH_SIZE,
) -> ThemeMap:
    """Attach summaries batch by batch; failing batches leave summaries untouched."""
    pending = pending_summaries(theme_map, files)
    if not pending:
        return theme_map
    updates: Dict[str, Tuple[str, str]] = {}
    for start in range(0, len(pending), max(batch_size, 1)):
        batch = pending[start : start + batch_size]
        try:
            summaries = dict(summarizer.summarize(batch))
        except Exception as err:  # noqa: BLE001
            LOGGER.warning("Summary batch of %d file(s) failed: %s", len(batch), err, exc_info=True)
            continue
        for item in batch:
            summary = summaries.get(item.path)
            if summary:
                updates[item.path] = (summary, item.content_hash)
    if not updates:
        return theme_map
    entries = dict(theme_map.files)
    for path, (summary, digest) in updates.items():
        entries[path] = entries[path].model_copy(update={"summary": summary, "summary_hash": digest})
    LOGGER.info("Enriched %d of %d pending file(s) for %s", len(updates), len(pending), theme_map.project_id)
    return theme_map.bumped(files=entries)


def clean_orphan_summaries(theme_map: ThemeMap, live_paths: Iterable[str]) -> ThemeMap:
    """Drop entries (and their summaries) for files that no longer exist."""
    live = set(live_paths)
    orphans = [path for path in theme_map.files if path not in live]
    if not orphans:
        return theme_map
    entries = {path: entry for path, entry in theme_map.files.items() if path in live}
    LOGGER.debug("Removing %d orphaned entries from %s", len(orphans), theme_map.project_id)
    return theme_map.bumped(files=entries)


__all__ = [
    "BATCH_SIZE",
    "ModelSummarizer",
    "Summarizer",
    "SummaryRequest",
    "clean_orphan_summaries",
    "enrich_theme_map",
    "pending_summaries",
]
