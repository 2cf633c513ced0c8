"""Orchestration layer: completion session, tool loop, run loop and pipeline.

``run_loop`` and ``pipeline`` depend on the memory package, which in turn uses
the message types defined here, so import them from their modules directly.
"""

from .observers import AgentObserver, notify
from .session import ChatTransport, CompletionSession, parse_completion
from .tool_loop import MAX_TOOL_CALLS_MESSAGE, ToolCallLoop, ToolLoopResult
from .types import Message, ModelResponse, ParsedToolCall, RunAttempt, TokenUsage, ToolCallRecord

__all__ = [
    "AgentObserver",
    "ChatTransport",
    "CompletionSession",
    "MAX_TOOL_CALLS_MESSAGE",
    "Message",
    "ModelResponse",
    "ParsedToolCall",
    "RunAttempt",
    "TokenUsage",
    "ToolCallLoop",
    "ToolCallRecord",
    "ToolLoopResult",
    "notify",
    "parse_completion",
]
