"""Planner -> executor -> reviewer pipeline built on the run loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .. import prompts
from ..errors import (
    AgentError,
    AuthenticationFailure,
    FailureKind,
    RateLimitedError,
    RetriesExhaustedError,
    classify_failure,
    failure_text,
)
from ..memory.conversation import ConversationStore
from ..models import ModelAvailabilityTracker
from .observers import AgentObserver, notify
from .run_loop import AgentRunLoop
from .session import CompletionSession
from .types import Message

__all__ = ["MultiAgentPipeline", "PipelineResult"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class PipelineResult:
    """Outputs of the three phases plus the combined markdown report."""

    plan: str
    execution: str
    review: str
    combined: str


class MultiAgentPipeline:
    """Decomposes one task into plan, execute and review phases.

    Planning and review are single completion calls. Execution is a full run
    loop against an empty transcript; the caller's history is restored
    afterwards and grows by exactly the task and the combined report.
    """

    def __init__(
        self,
        session: CompletionSession,
        tracker: ModelAvailabilityTracker,
        run_loop: AgentRunLoop,
        store: ConversationStore,
    ) -> None:
        self._session = session
        self._tracker = tracker
        self._run_loop = run_loop
        self._store = store

    async def run(self, task: str, *, observer: AgentObserver | None = None) -> PipelineResult:
        """Run all three phases.

        Raises:
            AgentError: Any phase failed; history is left unchanged.
        """

        notify(observer, "on_phase", "planning", "Creating a detailed plan...")
        plan = await self._single_completion(
            prompts.PLANNER_PROMPT,
            task,
            temperature=prompts.PLANNER_TEMPERATURE,
        )
        LOGGER.debug("Planner produced %d chars", len(plan))

        notify(observer, "on_phase", "executing", "Executing the plan...")
        with self._store.sandbox():
            execution = await self._run_loop.run(
                prompts.executor_prompt(task, plan),
                observer=observer,
            )

        notify(observer, "on_phase", "reviewing", "Reviewing the results...")
        review = await self._single_completion(
            prompts.REVIEWER_PROMPT,
            prompts.reviewer_request(task, plan, execution),
            temperature=prompts.REVIEWER_TEMPERATURE,
        )

        combined = prompts.combined_result(plan, execution, review)
        self._store.append(Message.user(task))
        self._store.add_assistant_message(combined)
        LOGGER.info("Multi-agent pipeline finished for task of %d chars", len(task))
        return PipelineResult(plan=plan, execution=execution, review=review, combined=combined)

    async def _single_completion(self, system: str, user: str, *, temperature: float) -> str:
        model_id = self._tracker.select_available().model_id
        try:
            response = await self._session.complete(
                model_id,
                [Message.system(system), Message.user(user)],
                temperature=temperature,
                max_tokens=prompts.AUXILIARY_MAX_TOKENS,
            )
        except Exception as exc:
            raise self._terminal_error(exc, model_id) from exc
        return response.text

    def _terminal_error(self, exc: Exception, model_id: str) -> AgentError:
        """Map a single-shot failure onto the terminal error the host renders."""

        kind = classify_failure(exc)
        reason = failure_text(exc)
        LOGGER.warning("Pipeline phase failed on %s (%s): %s", model_id, kind.value, reason)
        if kind is FailureKind.AUTHENTICATION:
            return AuthenticationFailure(f"Authentication failed: {reason}")
        if kind.rotates_model:
            self._tracker.record_rate_limited(model_id)
            return RateLimitedError(f"{model_id} is rate limited or unavailable: {reason}", model_id=model_id)
        return RetriesExhaustedError(f"Pipeline phase failed: {reason}", last_error=exc)
