"""Top-level run driver: model selection, failure classification and retries.

States per attempt::

    SELECT_MODEL -> AWAIT_COMPLETION -> SUCCESS
                                     -> RATE_LIMIT_FAILURE -> SELECT_MODEL
                                     -> OTHER_FAILURE      -> SELECT_MODEL

Rate-limited or unavailable models are parked in the tracker and the next
available model is tried immediately. When every model is cooling down the
loop sleeps until the soonest one recovers. Other failures are retried with a
self-correction note in the transcript, bounded by ``max_retries``;
authentication failures end the run at once.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable

from ..errors import (
    AllModelsExhaustedError,
    AuthenticationFailure,
    FailureKind,
    RetriesExhaustedError,
    classify_failure,
    failure_text,
    is_context_overflow,
)
from ..memory.conversation import ConversationStore
from ..models import ModelAvailabilityTracker, ModelSelection
from .observers import AgentObserver, notify
from .tool_loop import ToolCallLoop, ToolLoopResult
from .types import RunAttempt

__all__ = ["AgentRunLoop", "SleepFunc", "CONTEXT_OVERFLOW_NOTE"]

LOGGER = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]
SystemPromptSource = Callable[[], str]

CONTEXT_OVERFLOW_NOTE = (
    "The previous request exceeded the model's context window, most likely because a tool "
    "returned too much data. Use a more targeted approach: list only top-level items (no "
    "recursive listings) or narrow the search scope."
)


class AgentRunLoop:
    """Drives one logical request to a final assistant message.

    Example:
        loop = AgentRunLoop(tool_loop, tracker, store, max_retries=3)
        answer = await loop.run("What is using port 8080?", observer=console)
    """

    def __init__(
        self,
        tool_loop: ToolCallLoop,
        tracker: ModelAvailabilityTracker,
        store: ConversationStore,
        *,
        system_prompt: str | SystemPromptSource = "",
        max_retries: int = 3,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._tool_loop = tool_loop
        self._tracker = tracker
        self._store = store
        self._system_prompt = system_prompt
        self._max_retries = max(0, int(max_retries))
        self._sleep = sleep or asyncio.sleep
        self._last_result: ToolLoopResult | None = None

    @property
    def tracker(self) -> ModelAvailabilityTracker:
        return self._tracker

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def tool_loop(self) -> ToolCallLoop:
        return self._tool_loop

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @max_retries.setter
    def max_retries(self, value: int) -> None:
        self._max_retries = max(0, int(value))

    @property
    def attempt_budget(self) -> int:
        """Total attempts allowed: enough to cycle the whole pool once plus slack."""
        return max(self._max_retries, len(self._tracker) + 2)

    @property
    def last_result(self) -> ToolLoopResult | None:
        return self._last_result

    async def run(
        self,
        prompt: str | None = None,
        *,
        observer: AgentObserver | None = None,
        inject_files: bool = True,
    ) -> str:
        """Run until the model produces a final answer and return its text.

        When ``prompt`` is given it is stored as the next user message first.

        Raises:
            AuthenticationFailure: The service rejected the credentials.
            RetriesExhaustedError: Non rate-limit failures exceeded ``max_retries``.
            AllModelsExhaustedError: The attempt budget was spent.
        """

        if prompt is not None:
            self._store.add_user_message(prompt, inject_files=inject_files)

        system_prompt = self._resolve_system_prompt()
        budget = self.attempt_budget
        state = RunAttempt()

        while state.index < budget:
            selection = await self._select_model(state, budget, observer)
            model = selection.model
            state.model_id = model.id
            state.models_tried.append(model.id)
            LOGGER.debug("Attempt %d/%d using %s", state.index + 1, budget, model.id)

            try:
                result = await self._tool_loop.run(
                    model.id,
                    self._store.messages,
                    system_prompt=system_prompt,
                    observer=observer,
                )
            except Exception as exc:
                state.index += 1
                self._handle_failure(exc, selection, state, observer)
                continue

            self._store.add_assistant_message(result.text)
            self._last_result = result
            LOGGER.info(
                "Run finished on %s after %d attempt(s) (%d rate limited, %d other failures)",
                model.id,
                state.index + 1,
                state.rate_limit_failures,
                state.other_failures,
            )
            return result.text

        LOGGER.error("All %d attempts exhausted; models tried: %s", budget, ", ".join(state.models_tried))
        raise AllModelsExhaustedError("All models exhausted and max retries reached. Please try again later.")

    async def _select_model(
        self,
        state: RunAttempt,
        budget: int,
        observer: AgentObserver | None,
    ) -> ModelSelection:
        async with self._tracker.lock:
            selection = self._tracker.select_available()
            if not selection.ready:
                message = (
                    f"All models on cooldown. {selection.model.label} recovers in "
                    f"{math.ceil(selection.wait_seconds)}s..."
                )
                LOGGER.info(message)
                notify(observer, "on_retry", state.index + 1, budget, message)
                await self._sleep(selection.wait_seconds)
        return selection

    def _handle_failure(
        self,
        exc: Exception,
        selection: ModelSelection,
        state: RunAttempt,
        observer: AgentObserver | None,
    ) -> None:
        kind = classify_failure(exc)
        reason = failure_text(exc)
        model = selection.model

        if kind is FailureKind.AUTHENTICATION:
            LOGGER.error("Authentication failed on %s: %s", model.id, reason)
            raise AuthenticationFailure(f"Authentication failed: {reason}") from exc

        if kind.rotates_model:
            state.rate_limit_failures += 1
            self._tracker.record_rate_limited(model.id)
            following = self._tracker.select_available()
            if following.ready:
                label = "rate limited" if kind is FailureKind.RATE_LIMITED else "unavailable"
                message = f"{model.label} {label} → switching to {following.model.label}"
                LOGGER.info(message)
                notify(observer, "on_model_switch", model.id, following.model_id, message)
            return

        state.other_failures += 1
        LOGGER.warning(
            "Attempt on %s failed (%d/%d): %s",
            model.id,
            state.other_failures,
            self._max_retries,
            reason,
        )
        if state.other_failures > self._max_retries:
            raise RetriesExhaustedError(
                f"Request failed after {state.other_failures} attempt(s): {reason}",
                last_error=exc,
            ) from exc

        if is_context_overflow(exc):
            self._store.add_system_note(CONTEXT_OVERFLOW_NOTE)
        else:
            self._store.add_system_note(
                f"Previous attempt failed with error: {reason}. Please try a different approach."
            )
        notify(observer, "on_retry", state.other_failures, self._max_retries, reason)

    def _resolve_system_prompt(self) -> str:
        source = self._system_prompt
        return source() if callable(source) else source
