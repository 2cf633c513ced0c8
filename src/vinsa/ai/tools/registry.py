"""Tool registry with origin tagging.

Every tool is registered together with its origin: a built-in handler, a
handler contributed by a plugin, or a tool served by an external tool server.
The origin is resolved once here so that dispatch is a dictionary lookup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Mapping, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "BuiltinOrigin",
    "PluginOrigin",
    "ExternalOrigin",
    "ToolOrigin",
    "ToolRegistration",
    "ToolRegistry",
    "DuplicateToolError",
    "ToolRegistrationError",
]

LOGGER = logging.getLogger(__name__)

_TOOL_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_EMPTY_PARAMETERS: Mapping[str, Any] = {"type": "object", "properties": {}}

ToolHandler = Callable[[Mapping[str, Any]], Union[Any, Awaitable[Any]]]


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolRegistrationError(ValueError):
    """Raised when a tool spec is malformed (bad name or invalid JSON schema)."""


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier the model uses to call the tool.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's arguments object.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else dict(_EMPTY_PARAMETERS),
            },
        }


# -----------------------------------------------------------------------------
# Tool Origins
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class BuiltinOrigin:
    """Tool implemented in-process by the host."""

    kind = "builtin"


@dataclass(slots=True, frozen=True)
class PluginOrigin:
    """Tool contributed by a loaded plugin."""

    plugin: str
    kind = "plugin"


@dataclass(slots=True, frozen=True)
class ExternalOrigin:
    """Tool served by an external tool server under its own name."""

    server: str
    tool: str
    kind = "external"


ToolOrigin = Union[BuiltinOrigin, PluginOrigin, ExternalOrigin]


@dataclass(slots=True, frozen=True)
class ToolRegistration:
    """Record of a registered tool.

    ``handler`` is set for built-in and plugin tools; external tools are routed
    through the dispatcher's external client instead.
    """

    spec: ToolSpec
    origin: ToolOrigin
    handler: ToolHandler | None = None

    @property
    def name(self) -> str:
        return self.spec.name


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry mapping tool names to their spec, origin and handler.

    Example:
        registry = ToolRegistry()
        registry.register_builtin(
            ToolSpec(name="echo", description="Echo text back"),
            lambda args: args.get("text", ""),
        )
        registry.register_external("filesystem", ToolSpec(name="fs_read", description="..."), tool="read")
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}

    def register_builtin(
        self, spec: ToolSpec, handler: ToolHandler, *, allow_override: bool = False
    ) -> ToolRegistration:
        return self._register(ToolRegistration(spec, BuiltinOrigin(), handler), allow_override)

    def register_plugin(
        self,
        plugin: str,
        spec: ToolSpec,
        handler: ToolHandler,
        *,
        allow_override: bool = False,
    ) -> ToolRegistration:
        return self._register(ToolRegistration(spec, PluginOrigin(plugin), handler), allow_override)

    def register_external(
        self,
        server: str,
        spec: ToolSpec,
        *,
        tool: str | None = None,
        allow_override: bool = False,
    ) -> ToolRegistration:
        """Register a tool served by ``server``.

        Args:
            server: Name of the external tool server.
            spec: Spec exposed to the model (its name may be namespaced).
            tool: Name of the tool on the server; defaults to ``spec.name``.
            allow_override: Replace an existing registration with the same name.
        """
        origin = ExternalOrigin(server=server, tool=tool or spec.name)
        return self._register(ToolRegistration(spec, origin), allow_override)

    def unregister(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    def unregister_server(self, server: str) -> int:
        """Drop every tool served by ``server`` and return how many were removed."""
        names = [
            name
            for name, registration in self._tools.items()
            if isinstance(registration.origin, ExternalOrigin) and registration.origin.server == server
        ]
        for name in names:
            del self._tools[name]
        if names:
            LOGGER.debug("Unregistered %d tool(s) from server %s", len(names), server)
        return len(names)

    def get(self, name: str) -> ToolRegistration | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return [registration.spec for registration in self._tools.values()]

    def openai_tools(self) -> list[dict[str, Any]]:
        """Return tool definitions in registration order for the completion request."""
        return [registration.spec.to_openai_tool() for registration in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolRegistration]:
        return iter(list(self._tools.values()))

    def _register(self, registration: ToolRegistration, allow_override: bool) -> ToolRegistration:
        spec = registration.spec
        _validate_spec(spec)
        if spec.name in self._tools and not allow_override:
            raise DuplicateToolError(spec.name)
        self._tools[spec.name] = registration
        LOGGER.debug("Registered %s tool: %s", registration.origin.kind, spec.name)
        return registration


def _validate_spec(spec: ToolSpec) -> None:
    if not _TOOL_NAME_RE.match(spec.name or ""):
        raise ToolRegistrationError(
            f"Invalid tool name {spec.name!r}: use 1-64 letters, digits, '_' or '-'"
        )
    if not spec.parameters:
        return
    try:
        Draft202012Validator.check_schema(dict(spec.parameters))
    except SchemaError as exc:
        raise ToolRegistrationError(f"Tool '{spec.name}' has an invalid parameter schema: {exc.message}") from exc
    if spec.parameters.get("type", "object") != "object":
        raise ToolRegistrationError(f"Tool '{spec.name}' parameters must describe a JSON object")
