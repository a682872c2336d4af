from __future__ import annotations

import itertools
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from themeagent.coordinator.helpers import build_file_outline
from themeagent.coordinator.loop import CoordinationLoop, OutcomeStatus
from themeagent.coordinator.state import CoordinatorContext, IntentMode
from themeagent.coordinator.stuck import StuckDetector
from themeagent.coordinator.thresholds import PolicyConfig, PolicyThresholds
from themeagent.memory.schema import FileRecord
from themeagent.models.provider import (
    BaseProvider,
    CompletionOptions,
    CompletionResult,
    Message,
    ProviderRateLimitError,
    StopReason,
    ToolCall,
    ToolDefinition,
)
from themeagent.tools.execution import ToolResult
from themeagent.tools.execution_log import MemoryExecutionLog

_IDS = itertools.count(1)

Step = Union[CompletionResult, Exception]


def call(name: str, **arguments: Any) -> CompletionResult:
    return CompletionResult(
        tool_calls=(ToolCall(id=f"call-{next(_IDS)}", name=name, input=arguments),),
        stop_reason=StopReason.TOOL_USE,
    )


def say(text: str) -> CompletionResult:
    return CompletionResult(content=text)


class ScriptedProvider(BaseProvider):
    """Plays back a fixed list of responses, then finishes with plain text."""

    def __init__(self, script: Sequence[Step], *, repeat_last: bool = False) -> None:
        super().__init__("scripted")
        self._script = list(script)
        self._repeat_last = repeat_last
        self.seen: List[List[Message]] = []

    def _raw_complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        options: CompletionOptions,
    ) -> CompletionResult:
        self.seen.append(list(messages))
        if not self._script:
            return say("Done.")
        step = self._script[0] if self._repeat_last and len(self._script) == 1 else self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class FakeExecutor:
    def __init__(self, failures: Optional[Mapping[str, str]] = None) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures = dict(failures or {})

    def execute(self, name: str, arguments: Mapping[str, Any]) -> ToolResult:
        self.calls.append((name, dict(arguments)))
        if name in self._failures:
            return ToolResult(self._failures[name], is_error=True)
        target = arguments.get("filePath", "")
        if name == "read_file":
            return ToolResult(f"contents of {target}")
        return ToolResult(f"{name} applied to {target}")


def _context(
    theme_files: List[FileRecord],
    request: str = "Make the site navigation sticky",
    *,
    intent: IntentMode = IntentMode.CODE,
    detector: Optional[StuckDetector] = None,
    **thresholds: int,
) -> CoordinatorContext:
    header = next(record for record in theme_files if record.path == "sections/header.liquid")
    return CoordinatorContext(
        intent=intent,
        user_request=request,
        files=tuple(theme_files),
        preloaded=(header,),
        policy=PolicyConfig(base=PolicyThresholds(**thresholds)),
        stuck_detector=detector,
        execution_id="exec-1",
    )


def _no_sleep(seconds: float) -> None:
    return None


def test_read_edit_answer_completes(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [
            call("read_file", filePath="sections/header.liquid"),
            call("edit_file", filePath="sections/header.liquid", old="<header", new="<header data-sticky"),
            say("Made the navigation sticky."),
        ]
    )
    executor = FakeExecutor()
    log = MemoryExecutionLog()

    outcome = CoordinationLoop(provider, executor, log_sink=log).run(_context(theme_files))

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.message == "Made the navigation sticky."
    assert [change.file_path for change in outcome.changes] == ["sections/header.liquid"]
    assert outcome.tool_calls == 2
    assert outcome.iterations == 3
    kinds = [entry.kind for entry in log.entries("exec-1")]
    assert kinds[0] == "instruction"
    assert kinds[-1] == "outcome"
    assert kinds.count("tool_result") == 2
    tool_messages = [message for message in provider.seen[-1] if message.role == "tool"]
    assert tool_messages[0].content == "contents of sections/header.liquid"


def test_first_text_only_reply_triggers_a_forced_read(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [
            say("I would start by looking at the header."),
            call("edit_file", filePath="sections/header.liquid", old="a", new="b"),
            say("Done."),
        ]
    )
    executor = FakeExecutor()

    outcome = CoordinationLoop(provider, executor).run(_context(theme_files))

    assert executor.calls[0] == ("read_file", {"filePath": "sections/header.liquid"})
    assert any("(read for you)" in message.content for message in provider.seen[1])
    assert any("Outline of sections/header.liquid:" in message.content for message in provider.seen[1])
    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.tool_calls == 2


def test_edit_sla_blocks_further_lookups(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [
            call("grep_content", pattern="sticky"),
            call("grep_content", pattern="nav"),
            call("grep_content", pattern="menu"),
            call("edit_file", filePath="sections/header.liquid", old="a", new="b"),
            say("Done."),
        ]
    )
    executor = FakeExecutor()

    outcome = CoordinationLoop(provider, executor).run(_context(theme_files, edit_sla_tool_calls=2))

    assert [name for name, _ in executor.calls] == ["grep_content", "grep_content", "edit_file"]
    assert outcome.status is OutcomeStatus.COMPLETED
    seen = provider.seen[3]
    assert any(message.content.startswith("Lookup blocked") for message in seen if message.role == "tool")
    assert any("Further lookups are disabled" in message.content for message in seen if message.role == "user")


def test_duplicate_lookups_are_not_executed_twice(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [
            call("grep_content", pattern="sticky"),
            call("grep_content", pattern="sticky"),
            call("edit_file", filePath="sections/header.liquid", old="a", new="b"),
        ]
    )
    executor = FakeExecutor()

    CoordinationLoop(provider, executor).run(_context(theme_files))

    assert [name for name, _ in executor.calls] == ["grep_content", "edit_file"]


def test_repeated_failures_end_as_stuck(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [call("edit_file", filePath="sections/header.liquid", old="missing", new="x")], repeat_last=True
    )
    executor = FakeExecutor(failures={"edit_file": "old_text not found in file"})
    ctx = _context(theme_files, detector=StuckDetector(), max_stuck_recoveries=1, max_rethinks=10)

    outcome = CoordinationLoop(provider, executor).run(ctx)

    assert outcome.status is OutcomeStatus.STOPPED
    assert outcome.reason == "stuck"
    assert outcome.changes == ()
    assert "**What went wrong**" in outcome.message
    assert "old_text_not_found" in outcome.message
    assert any(message.content.startswith("MEMORY ANCHOR") for message in provider.seen[-1])


def test_publishing_waits_for_confirmation(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider([call("publish_theme", themeId="123")])
    executor = FakeExecutor()

    outcome = CoordinationLoop(provider, executor).run(_context(theme_files))

    assert outcome.status is OutcomeStatus.CLARIFICATION
    assert outcome.reason == "confirmation_gate"
    assert [option.id for option in outcome.options] == ["confirm", "cancel"]
    assert executor.calls == []


def test_provider_failures_stop_after_retries(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider([ProviderRateLimitError("slow down"), ProviderRateLimitError("slow down")])
    delays: List[float] = []

    outcome = CoordinationLoop(
        provider, FakeExecutor(), max_attempts=2, retry_delay=0.25, sleep=delays.append
    ).run(_context(theme_files, intent=IntentMode.ASK))

    assert outcome.status is OutcomeStatus.STOPPED
    assert outcome.reason == "provider_error"
    assert delays == [0.25]


def test_cancelled_before_start(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider([say("never")])
    cancel = threading.Event()
    cancel.set()

    outcome = CoordinationLoop(provider, FakeExecutor()).run(_context(theme_files), cancel_event=cancel)

    assert outcome.status is OutcomeStatus.CANCELLED
    assert provider.seen == []


def test_ask_mode_answers_directly(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider([say("The header lives in sections/header.liquid.")])

    outcome = CoordinationLoop(provider, FakeExecutor()).run(
        _context(theme_files, "Where is the header?", intent=IntentMode.ASK)
    )

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.message == "The header lives in sections/header.liquid."
    assert outcome.iterations == 1


def test_iteration_limit_stops_the_run(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [call("read_file", filePath=f"snippets/file-{index}.liquid") for index in range(5)]
    )

    outcome = CoordinationLoop(provider, FakeExecutor(), options=CompletionOptions(max_tokens=256)).run(
        _context(theme_files, intent=IntentMode.ASK, max_iterations=3)
    )

    assert outcome.status is OutcomeStatus.STOPPED
    assert outcome.reason == "max_iterations"
    assert outcome.iterations == 3
    assert outcome.tool_calls == 3


def test_code_run_without_changes_explains_itself(theme_files: List[FileRecord]) -> None:
    provider = ScriptedProvider(
        [
            call("read_file", filePath="sections/header.liquid"),
            say("I think the header is fine as is."),
            say("I think the header is fine as is."),
            say("I think the header is fine as is."),
        ]
    )

    outcome = CoordinationLoop(provider, FakeExecutor()).run(
        _context(theme_files, max_premature_stop_nudges=1, zero_tool_streak_limit=5)
    )

    assert outcome.status is OutcomeStatus.COMPLETED
    assert outcome.message.startswith("I think the header is fine as is.")
    assert "**How to proceed**" in outcome.message
    assert any(message.content.startswith("ACT NOW") for message in provider.seen[2])


def test_file_outline_lists_regions_and_truncates(theme_files: List[FileRecord]) -> None:
    stylesheet = next(record for record in theme_files if record.path == "assets/header.css")
    many_rules = "".join(f".c{index} {{ color: red; }}\n" for index in range(35))

    outline = build_file_outline(stylesheet.path, stylesheet.content)
    long_outline = build_file_outline("assets/many.css", many_rules).splitlines()

    assert outline.splitlines() == [
        "Outline of assets/header.css:",
        "- CSS rule: .site-header [lines 1-3]",
        "- CSS rule: .site-nav a [lines 5-7]",
    ]
    assert len(long_outline) == 32
    assert long_outline[-1] == "- ... 5 more"
    assert build_file_outline("assets/empty.css", "   \n") == "assets/empty.css: no structural regions found."
