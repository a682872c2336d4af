"""Deterministic provider used when no remote model is configured."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from .provider import BaseProvider, CompletionOptions, CompletionResult, Message, StopReason, ToolDefinition

SUMMARY_TASK = "file-summaries"


class OfflineProvider(BaseProvider):
    """Local stub that synthesizes structural summaries and plain replies."""

    def __init__(self) -> None:
        super().__init__("offline")

    def _raw_complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: CompletionOptions,
    ) -> CompletionResult:
        if options.cancel_event is not None and options.cancel_event.is_set():
            return CompletionResult(stop_reason=StopReason.CANCELLED)
        if options.metadata.get("task") == SUMMARY_TASK:
            files = options.metadata.get("files") or []
            return CompletionResult(content=json.dumps(self._summaries(files), indent=2))
        return CompletionResult(
            content="No remote model is configured; running with the offline provider.",
            stop_reason=StopReason.END_TURN,
        )

    @staticmethod
    def _summaries(files: List[Dict[str, Any]]) -> Dict[str, str]:
        summaries: Dict[str, str] = {}
        for item in files:
            path = str(item.get("path") or "").strip()
            if not path:
                continue
            purpose = str(item.get("purpose") or "theme file")
            features = [str(name) for name in item.get("features") or []][:4]
            sentence = f"{purpose[:1].upper()}{purpose[1:]}."
            if features:
                sentence += f" Defines {', '.join(features)}."
            summaries[path] = sentence
        return summaries


__all__ = ["OfflineProvider", "SUMMARY_TASK"]
