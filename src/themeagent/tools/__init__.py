"""Tool execution contract and execution log sinks."""

from .execution import (
    MUTATING_TOOL_NAMES,
    MutationFailure,
    MutationFailureReason,
    ToolExecutor,
    ToolResult,
    execute_tool_call,
    normalize_tool_result,
)
from .execution_log import ExecutionLogEntry, ExecutionLogSink, JsonlExecutionLog, MemoryExecutionLog, load_execution_log

__all__ = [
    "ExecutionLogEntry",
    "ExecutionLogSink",
    "JsonlExecutionLog",
    "MUTATING_TOOL_NAMES",
    "MemoryExecutionLog",
    "MutationFailure",
    "MutationFailureReason",
    "ToolExecutor",
    "ToolResult",
    "execute_tool_call",
    "load_execution_log",
    "normalize_tool_result",
]
