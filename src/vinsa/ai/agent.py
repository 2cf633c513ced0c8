"""Agent context object wiring the orchestration components together.

One :class:`VinsaAgent` is constructed at process start and passed to every
call site that needs it; there is no module-level singleton.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from ..services.settings import Settings
from . import prompts
from .client import AIClient, ClientSettings
from .errors import AuthenticationFailure
from .memory.conversation import CompactionResult, ConversationStore
from .models import MODEL_POOL, ModelAvailabilityTracker, ModelCandidate, ModelStatus
from .orchestration.observers import AgentObserver
from .orchestration.pipeline import MultiAgentPipeline, PipelineResult
from .orchestration.run_loop import AgentRunLoop, SleepFunc
from .orchestration.session import ChatTransport, CompletionSession
from .orchestration.tool_loop import ToolCallLoop
from .orchestration.types import Message, TokenUsage
from .tools.dispatcher import ExternalToolClient, ToolDispatcher
from .tools.registry import ToolHandler, ToolRegistry, ToolSpec

__all__ = ["VinsaAgent", "AgentStats", "create_agent", "format_duration"]

LOGGER = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "No Groq API key found."


@dataclass(slots=True, frozen=True)
class AgentStats:
    """Snapshot returned by :meth:`VinsaAgent.stats`."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    requests: int
    session_duration: str
    conversation_length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "requests": self.requests,
            "session_duration": self.session_duration,
            "conversation_length": self.conversation_length,
        }


class VinsaAgent:
    """Owns the transcript, model tracker, tools and usage counters for one session."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: ChatTransport | None = None,
        registry: ToolRegistry | None = None,
        external_client: ExternalToolClient | None = None,
        pool: Sequence[ModelCandidate] = MODEL_POOL,
        clock: Callable[[], float] | None = None,
        sleep: SleepFunc | None = None,
        base_dir: Path | str | None = None,
        project_context: str | None = None,
    ) -> None:
        self._settings = settings
        self._pool = tuple(pool)
        self._clock = clock or time.monotonic
        self._started_at = self._clock()
        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._project_context = project_context

        self._usage = TokenUsage()
        self._session = CompletionSession(
            transport or self._build_transport(settings),
            self._usage,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        self._dispatcher = ToolDispatcher(registry, external_client=external_client)
        self._tracker = ModelAvailabilityTracker(settings.model, self._pool, clock=clock)
        self._store = ConversationStore(base_dir=self._base_dir)
        self._tool_loop = ToolCallLoop(
            self._session,
            self._dispatcher,
            max_tool_calls=settings.max_tool_calls,
        )
        self._run_loop = AgentRunLoop(
            self._tool_loop,
            self._tracker,
            self._store,
            system_prompt=self.system_prompt,
            max_retries=settings.max_retries,
            sleep=sleep,
        )
        self._pipeline = MultiAgentPipeline(self._session, self._tracker, self._run_loop, self._store)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def tracker(self) -> ModelAvailabilityTracker:
        return self._tracker

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def registry(self) -> ToolRegistry:
        return self._dispatcher.registry

    @property
    def usage(self) -> TokenUsage:
        return self._usage

    @property
    def plan_mode(self) -> bool:
        return self._settings.plan_mode

    @plan_mode.setter
    def plan_mode(self, enabled: bool) -> None:
        self._settings = replace(self._settings, plan_mode=bool(enabled))
        LOGGER.debug("Plan mode %s", "enabled" if enabled else "disabled")

    @property
    def history(self) -> tuple[Message, ...]:
        return self._store.snapshot()

    @history.setter
    def history(self, messages: Iterable[Message]) -> None:
        self._store.restore(messages)

    @property
    def history_length(self) -> int:
        return len(self._store)

    def system_prompt(self) -> str:
        """Return the system prompt for the next run (re-reads ``VINSA.md`` files)."""

        context = self._project_context
        if context is None:
            context = prompts.load_project_context(self._base_dir)
        return prompts.build_system_prompt(plan_mode=self._settings.plan_mode, project_context=context)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    async def run(self, prompt: str, *, observer: AgentObserver | None = None) -> str:
        """Send ``prompt`` as the next user turn and return the final answer."""

        return await self._run_loop.run(prompt, observer=observer)

    async def ask(
        self,
        prompt: str,
        *,
        silent: bool = True,
        observer: AgentObserver | None = None,
    ) -> str:
        """One-shot question on a fresh transcript."""

        self._store.clear()
        return await self._run_loop.run(prompt, observer=None if silent else observer)

    async def run_multi_agent(self, task: str, *, observer: AgentObserver | None = None) -> PipelineResult:
        return await self._pipeline.run(task, observer=observer)

    async def compact_history(self) -> CompactionResult:
        """Replace the transcript with a model-written summary (see :meth:`ConversationStore.compact`)."""

        return await self._store.compact(self._summarize)

    async def _summarize(self, messages: Sequence[Message]) -> str:
        model_id = self._tracker.select_available().model_id
        response = await self._session.complete(
            model_id,
            [
                Message.system(prompts.SUMMARIZER_PROMPT),
                *messages,
                Message.user(prompts.SUMMARIZE_REQUEST),
            ],
            temperature=prompts.SUMMARIZER_TEMPERATURE,
            max_tokens=prompts.AUXILIARY_MAX_TOKENS,
        )
        return response.text

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------
    def clear_history(self) -> None:
        self._store.clear()

    def model_status(self) -> list[ModelStatus]:
        return self._tracker.status_snapshot()

    def stats(self) -> AgentStats:
        return AgentStats(
            prompt_tokens=self._usage.prompt_tokens,
            completion_tokens=self._usage.completion_tokens,
            total_tokens=self._usage.total_tokens,
            requests=self._usage.requests,
            session_duration=format_duration(self._clock() - self._started_at),
            conversation_length=len(self._store),
        )

    def register_tool(self, spec: ToolSpec, handler: ToolHandler, *, plugin: str | None = None) -> None:
        if plugin is None:
            self.registry.register_builtin(spec, handler)
        else:
            self.registry.register_plugin(plugin, spec, handler)

    def register_external_tools(
        self,
        server: str,
        specs: Iterable[ToolSpec],
        *,
        client: ExternalToolClient | None = None,
    ) -> int:
        """Expose ``server``'s tools to the model, replacing any earlier set from it."""

        if client is not None:
            self._dispatcher.set_external_client(client)
        self.registry.unregister_server(server)
        count = 0
        for spec in specs:
            self.registry.register_external(server, spec)
            count += 1
        LOGGER.info("Registered %d external tool(s) from %s", count, server)
        return count

    async def reinitialize_with_key(self, api_key: str) -> None:
        """Swap credentials: new transport, fresh model cooldowns, same transcript."""

        self._settings = replace(self._settings, api_key=api_key)
        previous = self._session.transport
        self._session.set_transport(self._build_transport(self._settings))
        self._tracker.reset()
        await _close_transport(previous)

    async def aclose(self) -> None:
        await _close_transport(self._session.transport)

    async def __aenter__(self) -> VinsaAgent:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def _build_transport(settings: Settings) -> AIClient:
        if not settings.api_key:
            raise AuthenticationFailure(MISSING_KEY_MESSAGE)
        return AIClient(
            ClientSettings(
                base_url=settings.base_url,
                api_key=settings.api_key,
                request_timeout=settings.request_timeout,
                debug_logging=settings.debug_logging,
            )
        )


async def _close_transport(transport: Any) -> None:
    close = getattr(transport, "aclose", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``"<m>m <s>s"``."""

    total = max(0, int(seconds))
    return f"{total // 60}m {total % 60}s"


def create_agent(settings: Settings, **kwargs: Any) -> VinsaAgent:
    """Build the process-wide agent from loaded settings."""

    agent = VinsaAgent(settings, **kwargs)
    LOGGER.debug(
        "Agent created (preferred model=%s, max_retries=%d, plan_mode=%s)",
        settings.model,
        settings.max_retries,
        settings.plan_mode,
    )
    return agent
