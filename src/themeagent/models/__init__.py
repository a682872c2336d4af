"""Model provider contract and the offline implementation."""

from .offline import OfflineProvider
from .provider import (
    BaseProvider,
    CompletionOptions,
    CompletionResult,
    Message,
    ModelProvider,
    ProviderError,
    StopReason,
    ToolCall,
    ToolDefinition,
)

__all__ = [
    "BaseProvider",
    "CompletionOptions",
    "CompletionResult",
    "Message",
    "ModelProvider",
    "OfflineProvider",
    "ProviderError",
    "StopReason",
    "ToolCall",
    "ToolDefinition",
]
