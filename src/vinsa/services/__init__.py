"""Service layer helpers (settings persistence)."""

from .settings import Settings, SettingsStore, SecretVault, redact_secret

__all__ = ["Settings", "SettingsStore", "SecretVault", "redact_secret"]
