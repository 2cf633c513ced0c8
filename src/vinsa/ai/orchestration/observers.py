"""Observer interface for run, tool and pipeline events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..tools.dispatcher import ToolResult

__all__ = ["AgentObserver", "notify"]

LOGGER = logging.getLogger(__name__)


class AgentObserver:
    """Base listener; every hook is a no-op so hosts override only what they render."""

    def on_tool_call(self, name: str, arguments: Mapping[str, Any]) -> None:
        """Called before a tool is executed."""

    def on_tool_result(self, result: "ToolResult") -> None:
        """Called after a tool finished (successfully or not)."""

    def on_retry(self, attempt: int, max_attempts: int, reason: str) -> None:
        """Called before a transient retry or a cooldown wait."""

    def on_model_switch(self, from_model: str, to_model: str, reason: str) -> None:
        """Called when the run rotates to another model without waiting."""

    def on_phase(self, phase: str, message: str) -> None:
        """Called when the multi-agent pipeline enters a phase."""


def notify(observer: AgentObserver | None, event: str, *args: Any) -> None:
    """Invoke ``observer.<event>(*args)``; failures are logged and swallowed."""

    if observer is None:
        return
    callback = getattr(observer, event, None)
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        LOGGER.debug("Observer %s failed", event, exc_info=True)
