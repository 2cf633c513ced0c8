"""Shared test helpers and stub classes.

This module contains reusable fakes used across multiple test files: a manual
clock, a recording sleep, a scripted chat transport and a recording observer.
Import from here instead of duplicating these classes in individual test files.

Example:
    from tests.helpers import ScriptedTransport, completion

    transport = ScriptedTransport([completion("hello")])
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable, Iterable, Mapping, Sequence

from vinsa.ai.models import ModelCandidate
from vinsa.ai.orchestration.observers import AgentObserver


SMALL_POOL: tuple[ModelCandidate, ...] = (
    ModelCandidate("model-a", "Model A", 60.0),
    ModelCandidate("model-b", "Model B", 30.0),
    ModelCandidate("model-c", "Model C", 45.0),
    ModelCandidate("model-d", "Model D", 45.0),
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records durations and advances a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


class ProviderError(Exception):
    """Transport failure carrying an HTTP status and optional JSON body."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def rate_limit_error() -> ProviderError:
    return ProviderError("Error code: 429 - rate_limit_exceeded", status_code=429)


def tool_call(name: str, arguments: Mapping[str, Any] | str, call_id: str | None = None) -> SimpleNamespace:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return SimpleNamespace(
        id=call_id or f"call_{name}",
        type="function",
        function=SimpleNamespace(name=name, arguments=raw),
    )


def completion(
    text: str | None = "",
    *,
    tool_calls: Sequence[SimpleNamespace] | None = None,
    usage: tuple[int, int] | None = (10, 5),
    model: str | None = None,
) -> SimpleNamespace:
    """Build an object shaped like ``openai.types.chat.ChatCompletion``."""

    message = SimpleNamespace(role="assistant", content=text, tool_calls=list(tool_calls) if tool_calls else None)
    choice = SimpleNamespace(index=0, message=message, finish_reason="tool_calls" if tool_calls else "stop")
    usage_ns = None
    if usage is not None:
        usage_ns = SimpleNamespace(
            prompt_tokens=usage[0],
            completion_tokens=usage[1],
            total_tokens=usage[0] + usage[1],
        )
    return SimpleNamespace(choices=[choice], usage=usage_ns, model=model)


ScriptItem = Any


class ScriptedTransport:
    """Chat transport replaying a script of responses and failures.

    Each script entry is either a completion object, an exception instance
    (raised), or a callable ``(model_id) -> entry`` resolved at call time. When
    the script runs out, ``default`` is used.
    """

    def __init__(self, script: Iterable[ScriptItem] = (), *, default: ScriptItem | None = None) -> None:
        self.script = list(script)
        self.default = default if default is not None else completion("done")
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def models(self) -> list[str]:
        return [call["model"] for call in self.calls]

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
        self.calls.append(
            {
                "model": model,
                "messages": [dict(message) for message in messages],
                "tools": list(tools) if tools else None,
                "tool_choice": tool_choice,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        entry = self.script.pop(0) if self.script else self.default
        if callable(entry) and not isinstance(entry, SimpleNamespace):
            entry = entry(model)
        if isinstance(entry, BaseException):
            raise entry
        return entry

    async def aclose(self) -> None:
        self.closed = True


class RecordingObserver(AgentObserver):
    """Observer collecting every event as a tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def on_tool_call(self, name: str, arguments: Mapping[str, Any]) -> None:
        self.events.append(("tool_call", name, dict(arguments)))

    def on_tool_result(self, result: Any) -> None:
        self.events.append(("tool_result", result.tool_name, result.success))

    def on_retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        self.events.append(("retry", attempt, max_attempts, reason))

    def on_model_switch(self, from_model: str, to_model: str, reason: str) -> None:
        self.events.append(("switch", from_model, to_model, reason))

    def on_phase(self, phase: str, message: str) -> None:
        self.events.append(("phase", phase))

    def of(self, kind: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]


class ExplodingObserver(AgentObserver):
    """Observer whose every hook raises."""

    def _boom(self, *args: Any) -> None:
        raise RuntimeError("observer failure")

    on_tool_call = _boom
    on_tool_result = _boom
    on_retry = _boom
    on_model_switch = _boom
    on_phase = _boom


def echo_handler(calls: list[Mapping[str, Any]] | None = None) -> Callable[[Mapping[str, Any]], Any]:
    """Return a sync tool handler echoing its arguments (optionally recording them)."""

    def _handler(arguments: Mapping[str, Any]) -> Any:
        if calls is not None:
            calls.append(dict(arguments))
        return {"echo": dict(arguments)}

    return _handler
