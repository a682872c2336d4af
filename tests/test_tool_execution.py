from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import pytest

from themeagent.models.provider import ToolCall
from themeagent.tools.execution import (
    MutationFailureReason,
    ToolResult,
    classify_mutation_failure,
    execute_tool_call,
    is_read_only,
    normalize_tool_result,
    parse_tool_input,
    tool_target,
)
from themeagent.tools.execution_log import (
    ExecutionLogEntry,
    JsonlExecutionLog,
    MemoryExecutionLog,
    load_execution_log,
)


class ExplodingExecutor:
    def execute(self, name: str, arguments: Mapping[str, Any]) -> ToolResult:
        raise OSError("disk unavailable")


class RawExecutor:
    def __init__(self, raw: Any) -> None:
        self.raw = raw

    def execute(self, name: str, arguments: Mapping[str, Any]) -> Any:
        return self.raw


def test_string_inputs_are_decoded() -> None:
    arguments, problem = parse_tool_input(ToolCall("1", "read_file", '{"filePath": "a.liquid"}'))

    assert problem is None
    assert arguments == {"filePath": "a.liquid"}
    assert parse_tool_input(ToolCall("2", "list_files", "  ")) == ({}, None)


def test_malformed_json_becomes_a_diagnostic() -> None:
    arguments, problem = parse_tool_input(ToolCall("1", "edit_file", '{"filePath": '))

    assert arguments == {}
    assert problem is not None and problem.is_error
    assert "Invalid JSON input for tool edit_file" in problem.content

    _, not_object = parse_tool_input(ToolCall("2", "edit_file", "[1, 2]"))
    assert not_object is not None and "must be a JSON object" in not_object.content


@pytest.mark.parametrize(
    "name, raw, expected",
    [
        ("read_file", ToolResult("text"), ToolResult("text")),
        ("read_file", {"content": "text", "is_error": True}, ToolResult("text", is_error=True)),
        ("read_file", None, ToolResult("Tool read_file returned no usable result.", is_error=True)),
        (
            "edit_file",
            ToolResult("   "),
            ToolResult("Tool edit_file returned an empty result; treat the change as not applied.", is_error=True),
        ),
        ("read_file", ToolResult(""), ToolResult("")),
    ],
)
def test_results_are_normalized(name: str, raw: Any, expected: ToolResult) -> None:
    assert normalize_tool_result(name, raw) == expected


def test_executor_faults_become_error_results() -> None:
    arguments, result = execute_tool_call(ExplodingExecutor(), ToolCall("1", "read_file", {"path": "a.css"}))

    assert arguments == {"path": "a.css"}
    assert result.is_error
    assert result.content == "Tool read_file failed: disk unavailable"


def test_executor_mappings_are_accepted() -> None:
    _, result = execute_tool_call(RawExecutor({"content": "ok"}), ToolCall("1", "edit_file", {}))

    assert result == ToolResult("ok")


def test_failure_classification() -> None:
    assert classify_mutation_failure("old_text was not found") is MutationFailureReason.OLD_TEXT_NOT_FOUND
    assert classify_mutation_failure("File does not exist") is MutationFailureReason.FILE_NOT_FOUND
    assert classify_mutation_failure("Permission denied") is MutationFailureReason.REJECTED


def test_targets_and_read_only_tools() -> None:
    assert tool_target({"file_path": " sections/a.liquid "}) == "sections/a.liquid"
    assert tool_target({"filePath": "", "path": "b.css"}) == "b.css"
    assert tool_target({"query": "x"}) is None
    assert is_read_only("read_file") and is_read_only("grep_content")
    assert not is_read_only("edit_file")


def test_jsonl_log_round_trip(tmp_path: Path) -> None:
    log = JsonlExecutionLog(tmp_path / "logs")
    log.append_message("Run 1", ExecutionLogEntry(kind="instruction", content="Fix the header"))
    log.append_message("Run 1", ExecutionLogEntry(kind="outcome", content="Done.", iteration=2, metadata={"status": "completed"}))

    path = log.path_for("Run 1")
    entries = load_execution_log(path)

    assert path.name == "run-1.jsonl"
    assert [entry.kind for entry in entries] == ["instruction", "outcome"]
    assert entries[1].metadata == {"status": "completed"}
    assert entries[1].iteration == 2


def test_memory_log_keeps_executions_apart() -> None:
    log = MemoryExecutionLog()
    log.append_message("a", ExecutionLogEntry(kind="nudge", content="Edit now"))

    assert [entry.content for entry in log.entries("a")] == ["Edit now"]
    assert log.entries("b") == []
