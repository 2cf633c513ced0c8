"""Tool dispatcher routing calls to built-in, plugin or external handlers.

The dispatcher never raises for tool failures: unknown tools, handler
exceptions and external-server errors all come back as an unsuccessful
:class:`ToolResult` so the model can see the error and adapt.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from .registry import ExternalOrigin, ToolRegistry

__all__ = [
    "ToolResult",
    "ToolDispatcher",
    "ExternalToolClient",
    "format_tool_payload",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Result Type
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolResult:
    """In-band outcome of one tool execution.

    Attributes:
        tool_name: Name of the tool that was called.
        success: Whether execution succeeded.
        payload: Raw value returned by the tool (``None`` on failure unless the
            tool reported a structured failure).
        error: Error message if the call failed.
        duration_ms: Execution time in milliseconds.
    """

    tool_name: str
    success: bool
    payload: Any = None
    error: str | None = None
    duration_ms: float = 0.0

    @classmethod
    def from_success(cls, tool_name: str, payload: Any, duration_ms: float = 0.0) -> ToolResult:
        return cls(tool_name=tool_name, success=True, payload=payload, duration_ms=duration_ms)

    @classmethod
    def from_error(
        cls,
        tool_name: str,
        error: str,
        duration_ms: float = 0.0,
        payload: Any = None,
    ) -> ToolResult:
        return cls(
            tool_name=tool_name,
            success=False,
            payload=payload,
            error=error,
            duration_ms=duration_ms,
        )

    def to_content(self) -> str:
        """Serialize the result for a ``tool`` message.

        Mapping payloads are merged into a ``{"success": ...}`` envelope; other
        successful payloads travel under ``output``.
        """
        body: dict[str, Any] = {"success": self.success}
        if not self.success:
            body["error"] = self.error or "Tool failed"
        elif self.payload is not None and not isinstance(self.payload, Mapping):
            body["output"] = self.payload
        if isinstance(self.payload, Mapping):
            for key, value in self.payload.items():
                body.setdefault(str(key), value)
        return format_tool_payload(body)


def format_tool_payload(payload: Any) -> str:
    """Format a tool payload for inclusion in a message."""
    if payload is None:
        return "null"
    if isinstance(payload, str):
        return payload
    if isinstance(payload, bool):
        return "true" if payload else "false"
    if isinstance(payload, (int, float)):
        return str(payload)
    if isinstance(payload, (dict, list, tuple)):
        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(payload)
    if hasattr(payload, "to_dict") and callable(payload.to_dict):
        try:
            return json.dumps(payload.to_dict(), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            pass
    return str(payload)


# -----------------------------------------------------------------------------
# Protocols
# -----------------------------------------------------------------------------


@runtime_checkable
class ExternalToolClient(Protocol):
    """Client able to call tools hosted by external tool servers."""

    async def call_tool(self, server: str, tool: str, arguments: Mapping[str, Any]) -> Any:
        """Invoke ``tool`` on ``server``; may raise on transport failure."""
        ...


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Executes registered tools by name.

    Example:
        dispatcher = ToolDispatcher(registry, external_client=router)
        result = await dispatcher.execute("read_file", {"path": "README.md"})
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        *,
        external_client: ExternalToolClient | None = None,
    ) -> None:
        self._registry = registry or ToolRegistry()
        self._external_client = external_client

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def external_client(self) -> ExternalToolClient | None:
        return self._external_client

    def set_external_client(self, client: ExternalToolClient | None) -> None:
        self._external_client = client

    def openai_tools(self) -> list[dict[str, Any]]:
        return self._registry.openai_tools()

    async def execute(self, name: str, arguments: Mapping[str, Any]) -> ToolResult:
        """Execute tool ``name`` with ``arguments``; never raises for tool failures."""

        start_time = time.perf_counter()
        registration = self._registry.get(name)
        if registration is None:
            LOGGER.warning("Model requested unknown tool %s", name)
            return ToolResult.from_error(name, f"Unknown tool: {name}")

        try:
            origin = registration.origin
            if isinstance(origin, ExternalOrigin):
                raw = await self._call_external(origin, arguments)
            else:
                if registration.handler is None:
                    return ToolResult.from_error(name, f"Tool '{name}' has no handler")
                raw = registration.handler(arguments)
                if inspect.isawaitable(raw):
                    raw = await raw
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            error_msg = str(exc) if str(exc) else type(exc).__name__
            LOGGER.warning("Tool %s failed: %s", name, error_msg)
            return ToolResult.from_error(name, error_msg, duration_ms)

        duration_ms = (time.perf_counter() - start_time) * 1000
        if isinstance(raw, ToolResult):
            return raw
        if isinstance(raw, Mapping) and raw.get("success") is False:
            error = str(raw.get("error") or "Tool reported failure")
            return ToolResult.from_error(name, error, duration_ms, payload=dict(raw))
        LOGGER.debug("Tool %s finished in %.1fms", name, duration_ms)
        return ToolResult.from_success(name, raw, duration_ms)

    async def _call_external(self, origin: ExternalOrigin, arguments: Mapping[str, Any]) -> Any:
        if self._external_client is None:
            raise RuntimeError(f"No external tool client connected for server '{origin.server}'")
        return await self._external_client.call_tool(origin.server, origin.tool, arguments)
