from __future__ import annotations

import json
import threading
from typing import List, Sequence

import pytest

from themeagent.models.offline import SUMMARY_TASK, OfflineProvider
from themeagent.models.provider import (
    BaseProvider,
    CompletionOptions,
    CompletionResult,
    Message,
    ProviderAuthError,
    ProviderResponseError,
    ProviderTimeoutError,
    StopReason,
    TextDelta,
    ToolCall,
    ToolDefinition,
    ToolDelta,
    ToolEnd,
    ToolStart,
    call_with_retries,
    parse_json_payload,
)


class FixedProvider(BaseProvider):
    def __init__(self, result: CompletionResult) -> None:
        super().__init__("fixed")
        self.result = result

    def _raw_complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: CompletionOptions,
    ) -> CompletionResult:
        return self.result


def test_retries_only_retryable_errors() -> None:
    attempts: List[int] = []
    delays: List[float] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise ProviderTimeoutError("timeout")
        return "ok"

    assert call_with_retries(flaky, max_attempts=3, retry_delay=0.1, sleep=delays.append) == "ok"
    assert delays == [0.1, 0.1]

    def denied() -> str:
        raise ProviderAuthError("bad key")

    with pytest.raises(ProviderAuthError):
        call_with_retries(denied, sleep=delays.append)
    assert len(delays) == 2


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"a": 1}', {"a": 1}),
        ('```json\n{"a": 1,}\n```', {"a": 1}),
        ('Here you go: {"a": [1, 2]} hope that helps', {"a": [1, 2]}),
        ("“”", ""),
    ],
)
def test_json_payloads_are_salvaged(raw: str, expected: object) -> None:
    assert parse_json_payload(raw) == expected


def test_unparseable_payloads_raise() -> None:
    with pytest.raises(ProviderResponseError):
        parse_json_payload("   ")
    with pytest.raises(ProviderResponseError):
        parse_json_payload("no json here")


def test_streaming_replays_a_completion() -> None:
    provider = FixedProvider(
        CompletionResult(
            content="Reading",
            tool_calls=(ToolCall("t1", "read_file", {"filePath": "a.liquid"}),),
            stop_reason=StopReason.TOOL_USE,
        )
    )

    events = list(provider.stream_with_tools([Message("user", "hi")], ()))

    assert events == [
        TextDelta("Reading"),
        ToolStart("t1", "read_file"),
        ToolDelta("t1", json.dumps({"filePath": "a.liquid"})),
        ToolEnd("t1"),
    ]


def test_offline_provider_summaries() -> None:
    options = CompletionOptions(
        metadata={
            "task": SUMMARY_TASK,
            "files": [
                {"path": "sections/header.liquid", "purpose": "header section", "features": ["Setting: logo"]},
                {"path": ""},
            ],
        }
    )

    result = OfflineProvider().complete([Message("user", "summarise")], options)

    assert json.loads(result.content) == {"sections/header.liquid": "Header section. Defines Setting: logo."}


def test_offline_provider_honours_cancellation() -> None:
    cancel = threading.Event()
    cancel.set()

    result = OfflineProvider().complete([Message("user", "hi")], CompletionOptions(cancel_event=cancel))

    assert result.stop_reason is StopReason.CANCELLED
