"""Backend-neutral contract for language-model providers.

The core only depends on the shapes defined here: chat messages, tool
definitions, a completion result with optional tool calls and a stop reason,
and a stream of incremental events. Concrete HTTP clients live outside this
package and subclass :class:`BaseProvider` (or satisfy
:class:`ModelProvider` structurally).
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar, Union

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "BaseProvider",
    "CompletionOptions",
    "CompletionResult",
    "Message",
    "ModelProvider",
    "ProviderAuthError",
    "ProviderError",
    "ProviderNetworkError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderTimeoutError",
    "StopReason",
    "StreamEvent",
    "TextDelta",
    "ToolCall",
    "ToolDefinition",
    "ToolDelta",
    "ToolEnd",
    "ToolStart",
    "call_with_retries",
    "parse_json_payload",
]


class ProviderError(RuntimeError):
    """Base error raised by model providers."""

    retryable = False


class ProviderAuthError(ProviderError):
    """Credentials were rejected; retrying will not help."""


class ProviderRateLimitError(ProviderError):
    """The backend throttled the request."""

    retryable = True


class ProviderTimeoutError(ProviderError):
    """The backend did not answer in time."""

    retryable = True


class ProviderNetworkError(ProviderError):
    """The transport failed before a response arrived."""

    retryable = True


class ProviderResponseError(ProviderError):
    """The backend answered with a payload that could not be interpreted."""


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``input`` is whatever the backend produced: usually a mapping, sometimes a
    raw JSON string that still needs decoding.
    """

    id: str
    name: str
    input: Union[Mapping[str, Any], str] = field(default_factory=dict)


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class CompletionResult:
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    stop_reason: StopReason = StopReason.END_TURN


@dataclass
class CompletionOptions:
    max_tokens: int = 4096
    temperature: float = 0.0
    system: Optional[str] = None
    cancel_event: Optional[threading.Event] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolStart:
    id: str
    name: str


@dataclass(frozen=True)
class ToolDelta:
    id: str
    partial_json: str


@dataclass(frozen=True)
class ToolEnd:
    id: str


StreamEvent = Union[TextDelta, ToolStart, ToolDelta, ToolEnd]


class ModelProvider(Protocol):
    def complete(self, messages: Sequence[Message], options: Optional[CompletionOptions] = None) -> CompletionResult:
        ...

    def stream(self, messages: Sequence[Message], options: Optional[CompletionOptions] = None) -> Iterator[StreamEvent]:
        ...

    def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        ...

    def stream_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: Optional[CompletionOptions] = None,
    ) -> Iterator[StreamEvent]:
        ...


class BaseProvider:
    """Provider base class; subclasses implement :meth:`_raw_complete`.

    Streaming defaults to replaying a single completion as events, which is
    enough for backends without native streaming.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def complete(self, messages: Sequence[Message], options: Optional[CompletionOptions] = None) -> CompletionResult:
        return self._raw_complete(messages, (), options or CompletionOptions())

    def stream(self, messages: Sequence[Message], options: Optional[CompletionOptions] = None) -> Iterator[StreamEvent]:
        return self._replay(self.complete(messages, options))

    def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        return self._raw_complete(messages, tools, options or CompletionOptions())

    def stream_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: Optional[CompletionOptions] = None,
    ) -> Iterator[StreamEvent]:
        return self._replay(self.complete_with_tools(messages, tools, options))

    def _raw_complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: CompletionOptions,
    ) -> CompletionResult:
        """Perform the backend call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_complete().")

    @staticmethod
    def _replay(result: CompletionResult) -> Iterator[StreamEvent]:
        if result.content:
            yield TextDelta(result.content)
        for call in result.tool_calls:
            yield ToolStart(call.id, call.name)
            payload = call.input if isinstance(call.input, str) else json.dumps(dict(call.input))
            yield ToolDelta(call.id, payload)
            yield ToolEnd(call.id)


def call_with_retries(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    retry_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying retryable provider errors with a fixed delay."""
    attempt = 1
    while True:
        try:
            return operation()
        except ProviderError as error:
            if not error.retryable or attempt >= max_attempts:
                raise
            LOGGER.warning("Provider call failed (attempt %d/%d): %s", attempt, max_attempts, error)
            attempt += 1
            sleep(retry_delay)


def parse_json_payload(raw: str) -> Any:
    """Parse JSON emitted by a model, tolerating fences and surrounding prose."""
    text = _normalise_json_string(raw.strip())
    if not text:
        raise ProviderResponseError("Model returned an empty response.")
    candidates: List[str] = [text]
    repaired = _repair_json_payload(text)
    if repaired and repaired not in candidates:
        candidates.append(repaired)
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ProviderResponseError(f"Model returned invalid JSON: {text[:200]}")


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    match = re.match(r"```(?:json)?\s*\n", payload, re.IGNORECASE)
    if not match:
        return payload
    fence_end = payload.find("```", match.end())
    if fence_end == -1:
        return payload
    return payload[match.end() : fence_end].strip()


def _normalise_json_string(payload: str) -> str:
    translation = {0x201C: '"', 0x201D: '"', 0x00A0: " ", 0xFEFF: ""}
    return payload.translate(str.maketrans(translation))


def _repair_json_payload(raw: str) -> Optional[str]:
    """Salvage the first balanced JSON object or array embedded in noisy output."""
    stripped = _strip_code_fence(raw)
    opening: Optional[int] = None
    expected: List[str] = []
    for index, char in enumerate(stripped):
        if char in "{[":
            if opening is None:
                opening = index
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected and opening is not None:
                candidate = stripped[opening : index + 1]
                return re.sub(r",(\s*[}\]])", r"\1", candidate)
    return None
