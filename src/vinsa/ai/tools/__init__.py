"""Tool registry and dispatcher."""

from .dispatcher import ExternalToolClient, ToolDispatcher, ToolResult, format_tool_payload
from .registry import (
    BuiltinOrigin,
    DuplicateToolError,
    ExternalOrigin,
    PluginOrigin,
    ToolHandler,
    ToolOrigin,
    ToolRegistration,
    ToolRegistrationError,
    ToolRegistry,
    ToolSpec,
)

__all__ = [
    "BuiltinOrigin",
    "DuplicateToolError",
    "ExternalOrigin",
    "ExternalToolClient",
    "PluginOrigin",
    "ToolDispatcher",
    "ToolHandler",
    "ToolOrigin",
    "ToolRegistration",
    "ToolRegistrationError",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "format_tool_payload",
]
