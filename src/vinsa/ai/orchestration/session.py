"""Single request/response exchange with the completion service."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from .types import Message, ModelResponse, ParsedToolCall, TokenUsage

__all__ = ["ChatTransport", "CompletionSession", "parse_completion"]

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ChatTransport(Protocol):
    """Anything able to submit one chat completion (normally :class:`~vinsa.ai.client.AIClient`)."""

    async def create_chat_completion(
        self,
        model: str,
        messages: Iterable[Mapping[str, Any]],
        *,
        tools: Iterable[Mapping[str, Any]] | None = None,
        tool_choice: Any = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        ...


class CompletionSession:
    """Submits transcripts for a specific model and records token usage.

    The session neither retries nor interprets failures: whatever the
    transport raises reaches the caller unchanged.
    """

    def __init__(
        self,
        transport: ChatTransport,
        usage: TokenUsage | None = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8192,
    ) -> None:
        self._transport = transport
        self._usage = usage if usage is not None else TokenUsage()
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def usage(self) -> TokenUsage:
        return self._usage

    @property
    def transport(self) -> ChatTransport:
        return self._transport

    def set_transport(self, transport: ChatTransport) -> None:
        self._transport = transport

    async def complete(
        self,
        model_id: str,
        messages: Sequence[Message],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """Run one completion call against ``model_id``."""

        tool_list = list(tools or ())
        response = await self._transport.create_chat_completion(
            model_id,
            [message.to_chat_param() for message in messages],
            tools=tool_list or None,
            tool_choice="auto" if tool_list else None,
            temperature=self._temperature if temperature is None else temperature,
            max_tokens=self._max_tokens if max_tokens is None else max_tokens,
        )
        parsed = parse_completion(response, model_id)
        self._usage.record(parsed.prompt_tokens, parsed.completion_tokens, _total_tokens(response))
        LOGGER.debug(
            "Completion from %s: %d chars, %d tool call(s), finish=%s",
            model_id,
            len(parsed.text),
            len(parsed.tool_calls),
            parsed.finish_reason,
        )
        return parsed


def parse_completion(response: Any, model_id: str | None = None) -> ModelResponse:
    """Convert a chat completion object into a :class:`ModelResponse`."""

    usage = getattr(response, "usage", None)
    prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
    model = getattr(response, "model", None) or model_id

    choices = getattr(response, "choices", None) or []
    if not choices:
        return ModelResponse(
            text="",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            model=model,
        )

    choice = choices[0]
    message = getattr(choice, "message", None)
    text = getattr(message, "content", None) or ""
    tool_calls: list[ParsedToolCall] = []
    for index, call in enumerate(getattr(message, "tool_calls", None) or []):
        function = getattr(call, "function", None)
        name = getattr(function, "name", None)
        if not name:
            continue
        tool_calls.append(
            ParsedToolCall(
                call_id=getattr(call, "id", None) or f"call_{index}",
                name=name,
                arguments=getattr(function, "arguments", None) or "",
                index=index,
            )
        )
    return ModelResponse(
        text=text,
        tool_calls=tuple(tool_calls),
        finish_reason=getattr(choice, "finish_reason", None),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        model=model,
    )


def _total_tokens(response: Any) -> int | None:
    usage = getattr(response, "usage", None)
    total = getattr(usage, "total_tokens", None)
    return int(total) if total is not None else None
