"""Core type definitions for the orchestration layer.

The frozen dataclasses here flow between the completion session, the tool
loop and the run loop. Only the usage accumulator and the per-run attempt
record are mutable, since both are counters owned by a single agent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

from openai.types.chat import ChatCompletionMessageParam

__all__ = [
    "Message",
    "MessageRole",
    "ParsedToolCall",
    "ModelResponse",
    "TokenUsage",
    "ToolCallRecord",
    "RunAttempt",
]


# -----------------------------------------------------------------------------
# Message Type
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message.

    This is the canonical message type used by the conversation store and the
    tool loop. Can be converted to/from OpenAI's ChatCompletionMessageParam format.

    Attributes:
        role: The role of the message sender.
        content: The text content of the message.
        name: Optional name for tool messages.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls made by the assistant.
        metadata: Additional metadata (not sent to model).
    """

    role: MessageRole
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[Mapping[str, Any], ...] | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            payload["tool_calls"] = list(self.tool_calls)
        return payload  # type: ignore[return-value]

    @classmethod
    def from_chat_param(cls, param: Mapping[str, Any]) -> Message:
        """Create a Message from OpenAI's ChatCompletionMessageParam format."""
        tool_calls = param.get("tool_calls")
        if tool_calls is not None:
            tool_calls = tuple(tool_calls)
        content = param.get("content")
        return cls(
            role=param.get("role", "user"),  # type: ignore[arg-type]
            content="" if content is None else str(content),
            name=param.get("name"),
            tool_call_id=param.get("tool_call_id"),
            tool_calls=tool_calls,
        )

    @classmethod
    def system(cls, content: str, **metadata: Any) -> Message:
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def user(cls, content: str, **metadata: Any) -> Message:
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[Mapping[str, Any]] | None = None,
        **metadata: Any,
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
            metadata=metadata,
        )

    @classmethod
    def tool(
        cls,
        content: str,
        tool_call_id: str,
        name: str | None = None,
        **metadata: Any,
    ) -> Message:
        return cls(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            metadata=metadata,
        )


# -----------------------------------------------------------------------------
# Model Response Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParsedToolCall:
    """A tool invocation requested by the model.

    Attributes:
        call_id: Unique identifier for this call.
        name: Name of the tool to call.
        arguments: Arguments as raw JSON text (may be malformed).
        index: Position in the tool_calls array.
    """

    call_id: str
    name: str
    arguments: str
    index: int = 0

    def to_chat_param(self) -> dict[str, Any]:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True, frozen=True)
class ModelResponse:
    """Parsed response from the model.

    Attributes:
        text: The text content of the response.
        tool_calls: Parsed tool calls from the response.
        finish_reason: Why the model stopped generating.
        prompt_tokens: Tokens used in the prompt.
        completion_tokens: Tokens used in the completion.
        model: Model that generated the response.
    """

    text: str
    tool_calls: tuple[ParsedToolCall, ...] = ()
    finish_reason: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def to_message(self) -> Message:
        """Convert response to an assistant Message."""
        tool_calls_data = None
        if self.tool_calls:
            tool_calls_data = tuple(call.to_chat_param() for call in self.tool_calls)
        return Message.assistant(self.text, tool_calls=tool_calls_data)


# -----------------------------------------------------------------------------
# Counters and Records
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class TokenUsage:
    """Monotonic token counters scoped to one agent instance."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    requests: int = 0

    def record(self, prompt_tokens: int = 0, completion_tokens: int = 0, total_tokens: int | None = None) -> None:
        prompt = max(0, int(prompt_tokens or 0))
        completion = max(0, int(completion_tokens or 0))
        total = prompt + completion if total_tokens is None else max(0, int(total_tokens))
        self.prompt_tokens += prompt
        self.completion_tokens += completion
        self.total_tokens += total
        self.requests += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "requests": self.requests,
        }


@dataclass(slots=True, frozen=True)
class ToolCallRecord:
    """Record of a tool call execution.

    Attributes:
        call_id: Identifier of the originating call.
        name: Name of the tool that was called.
        arguments: Normalized arguments passed to the tool.
        result: Serialized tool output sent back to the model.
        success: Whether the tool executed successfully.
        duration_ms: Execution time in milliseconds.
        skipped: True when the call was not executed because the ceiling was hit.
    """

    call_id: str
    name: str
    arguments: Mapping[str, Any]
    result: str = ""
    success: bool = True
    duration_ms: float = 0.0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "arguments": dict(self.arguments),
            "result": self.result,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class RunAttempt:
    """Ephemeral bookkeeping for one top-level run.

    Attributes:
        model_id: Model serving the current attempt.
        index: Zero-based attempt number within the budget.
        rate_limit_failures: Failures that rotated or parked a model.
        other_failures: Transient failures counted against ``max_retries``.
    """

    model_id: str | None = None
    index: int = 0
    rate_limit_failures: int = 0
    other_failures: int = 0
    models_tried: list[str] = field(default_factory=list)
