"""Conversation transcript owned by an agent for its whole lifetime."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Iterator, Sequence

from ..orchestration.types import Message
from .file_context import inject_file_context

__all__ = [
    "ConversationStore",
    "CompactionResult",
    "Summarizer",
    "MIN_COMPACTION_MESSAGES",
    "SUMMARY_PREFIX",
    "SUMMARY_ACKNOWLEDGEMENT",
]

LOGGER = logging.getLogger(__name__)

MIN_COMPACTION_MESSAGES = 4
SUMMARY_PREFIX = "[CONTEXT] Previous conversation summary:\n"
SUMMARY_ACKNOWLEDGEMENT = (
    "Understood. I have the context from our previous conversation. How can I help you next?"
)
NOT_ENOUGH_TO_COMPACT = "Not enough conversation to compress."

Summarizer = Callable[[Sequence[Message]], Awaitable[str]]


@dataclass(slots=True, frozen=True)
class CompactionResult:
    """Outcome of :meth:`ConversationStore.compact`."""

    compacted: bool
    status: str
    before: int
    after: int


class ConversationStore:
    """Ordered user/assistant/tool transcript.

    History only grows, except through :meth:`compact` (replaces everything
    with a two-message summary), :meth:`clear`, and :meth:`restore`.
    """

    def __init__(
        self,
        messages: Iterable[Message] | None = None,
        *,
        base_dir: Path | str | None = None,
    ) -> None:
        self._messages: list[Message] = list(messages or ())
        self._base_dir = Path(base_dir) if base_dir is not None else None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def base_dir(self) -> Path:
        return self._base_dir or Path.cwd()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def add_user_message(self, text: str, *, inject_files: bool = True) -> Message:
        """Store a user turn, appending referenced ``@file`` contents when enabled."""

        if not inject_files:
            return self.append(Message.user(text))
        injection = inject_file_context(text, self.base_dir)
        if injection.changed:
            return self.append(Message.user(injection.text, injected_files=injection.injected))
        return self.append(Message.user(text))

    def add_assistant_message(self, text: str) -> Message:
        return self.append(Message.assistant(text))

    def add_system_note(self, text: str) -> Message:
        """Append a synthetic note the model sees as a user turn."""

        return self.append(Message.user(f"[SYSTEM] {text}", synthetic=True))

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def restore(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)

    @contextlib.contextmanager
    def sandbox(self) -> Iterator[ConversationStore]:
        """Run a block against an empty transcript, restoring the original afterwards.

        Restoration happens on every exit path, including exceptions and task
        cancellation.
        """

        saved = self.snapshot()
        self._messages = []
        try:
            yield self
        finally:
            self._messages = list(saved)

    async def compact(self, summarize: Summarizer) -> CompactionResult:
        """Replace the transcript with a summary pair.

        Fewer than four messages is a no-op. Otherwise ``summarize`` is awaited
        once with the current transcript; if it raises, history is unchanged.
        """

        before = len(self._messages)
        if before < MIN_COMPACTION_MESSAGES:
            return CompactionResult(False, NOT_ENOUGH_TO_COMPACT, before, before)

        summary = await summarize(self.snapshot())
        self._messages = [
            Message.user(f"{SUMMARY_PREFIX}{summary}", summary=True),
            Message.assistant(SUMMARY_ACKNOWLEDGEMENT),
        ]
        LOGGER.info("Compacted conversation from %d to %d messages", before, len(self._messages))
        status = f"Compressed {before} messages → 2 (summary). Tokens saved for future requests."
        return CompactionResult(True, status, before, len(self._messages))
