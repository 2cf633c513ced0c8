"""AI client, agent orchestration, and tool wiring."""

from .client import AIClient, ClientSettings

__all__ = ["AIClient", "ClientSettings"]
