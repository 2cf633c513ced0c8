"""Bounded reason/act loop for a single model attempt."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ..tools.dispatcher import ToolDispatcher
from .observers import AgentObserver, notify
from .session import CompletionSession
from .tool_call_parser import (
    MAX_TOOL_RESULT_CHARS,
    failed_generation_from_error,
    parse_tool_arguments,
    recover_tool_calls,
    truncate_result,
)
from .types import Message, ModelResponse, ParsedToolCall, ToolCallRecord

__all__ = [
    "DEFAULT_MAX_TOOL_CALLS",
    "MAX_TOOL_CALLS_MESSAGE",
    "SKIPPED_TOOL_CALL_CONTENT",
    "ToolCallLoop",
    "ToolLoopResult",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_CALLS = 20
MAX_TOOL_CALLS_MESSAGE = (
    "I reached the maximum number of tool calls for this request. Here is what I found "
    "so far. Please ask me to continue if needed."
)
SKIPPED_TOOL_CALL_CONTENT = (
    '{"success": false, "error": "Skipped: the tool call limit for this request was reached."}'
)


@dataclass(slots=True, frozen=True)
class ToolLoopResult:
    """Outcome of one model attempt.

    Attributes:
        text: Final assistant text (never absent, possibly empty).
        model: Model that served the attempt.
        tool_calls: Records of every tool call requested, in order.
        iterations: Number of completion calls made.
        limit_reached: True when the tool call ceiling ended the loop.
    """

    text: str
    model: str
    tool_calls: tuple[ToolCallRecord, ...] = ()
    iterations: int = 0
    limit_reached: bool = False

    @property
    def executed_tool_calls(self) -> int:
        return sum(1 for record in self.tool_calls if not record.skipped)


class ToolCallLoop:
    """Alternates completion calls with tool execution until the model answers.

    Tool calls run sequentially in request order because later calls may depend
    on earlier results. At most ``max_tool_calls`` tools execute per attempt;
    once the ceiling is hit the loop ends with :data:`MAX_TOOL_CALLS_MESSAGE`.
    """

    def __init__(
        self,
        session: CompletionSession,
        dispatcher: ToolDispatcher,
        *,
        max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS,
        max_result_chars: int = MAX_TOOL_RESULT_CHARS,
    ) -> None:
        if max_tool_calls < 1:
            raise ValueError("max_tool_calls must be at least 1")
        self._session = session
        self._dispatcher = dispatcher
        self._max_tool_calls = max_tool_calls
        self._max_result_chars = max_result_chars

    @property
    def max_tool_calls(self) -> int:
        return self._max_tool_calls

    @property
    def session(self) -> CompletionSession:
        return self._session

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    async def run(
        self,
        model_id: str,
        history: Sequence[Message],
        *,
        system_prompt: str,
        observer: AgentObserver | None = None,
    ) -> ToolLoopResult:
        """Run the loop against ``model_id`` on a working copy of ``history``.

        Completion failures propagate unchanged, except for a provider-rejected
        generation whose tool calls could be recovered.
        """

        transcript: list[Message] = [Message.system(system_prompt), *history]
        tools = self._dispatcher.openai_tools()
        records: list[ToolCallRecord] = []
        executed = 0
        iterations = 0

        while executed < self._max_tool_calls:
            iterations += 1
            response = await self._complete(model_id, transcript, tools, start_index=len(records))
            if not response.has_tool_calls:
                LOGGER.debug(
                    "Model %s answered after %d iteration(s) and %d tool call(s)",
                    model_id,
                    iterations,
                    executed,
                )
                return ToolLoopResult(
                    text=response.text,
                    model=model_id,
                    tool_calls=tuple(records),
                    iterations=iterations,
                )

            transcript.append(response.to_message())
            for call in response.tool_calls:
                if executed >= self._max_tool_calls:
                    transcript.append(_skipped_message(call))
                    records.append(
                        ToolCallRecord(
                            call_id=call.call_id,
                            name=call.name,
                            arguments=parse_tool_arguments(call.arguments),
                            result=SKIPPED_TOOL_CALL_CONTENT,
                            success=False,
                            skipped=True,
                        )
                    )
                    continue
                executed += 1
                record = await self._execute(call, observer)
                records.append(record)
                transcript.append(Message.tool(record.result, call.call_id, tool_name=call.name))

        LOGGER.warning(
            "Model %s reached the tool call limit (%d)",
            model_id,
            self._max_tool_calls,
        )
        return ToolLoopResult(
            text=MAX_TOOL_CALLS_MESSAGE,
            model=model_id,
            tool_calls=tuple(records),
            iterations=iterations,
            limit_reached=True,
        )

    async def _complete(
        self,
        model_id: str,
        transcript: Sequence[Message],
        tools: Sequence[dict],
        *,
        start_index: int,
    ) -> ModelResponse:
        try:
            return await self._session.complete(model_id, transcript, tools=tools)
        except Exception as exc:
            failed_generation = failed_generation_from_error(exc)
            recovered = recover_tool_calls(failed_generation, start_index) if failed_generation else []
            if not recovered:
                raise
            return ModelResponse(text="", tool_calls=tuple(recovered), model=model_id)

    async def _execute(self, call: ParsedToolCall, observer: AgentObserver | None) -> ToolCallRecord:
        arguments = parse_tool_arguments(call.arguments)
        notify(observer, "on_tool_call", call.name, arguments)
        result = await self._dispatcher.execute(call.name, arguments)
        notify(observer, "on_tool_result", result)
        content = truncate_result(result.to_content(), self._max_result_chars)
        return ToolCallRecord(
            call_id=call.call_id,
            name=call.name,
            arguments=arguments,
            result=content,
            success=result.success,
            duration_ms=result.duration_ms,
        )


def _skipped_message(call: ParsedToolCall) -> Message:
    return Message.tool(SKIPPED_TOOL_CALL_CONTENT, call.call_id, tool_name=call.name, skipped=True)
