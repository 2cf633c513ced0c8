"""Failure classification and terminal errors for agent runs.

Completion failures reach the run loop as whatever the transport raised. They
are sorted into a :class:`FailureKind` here so that every retry decision lives
in one place. Structured signals (``openai`` exception types and HTTP status
codes) are consulted first; the error text is matched against known markers
only when no structured signal is present. Quoted status codes count only as
whole tokens, and rate-limit markers are checked before credential markers.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

import httpx
import openai

__all__ = [
    "FailureKind",
    "classify_failure",
    "failure_text",
    "is_context_overflow",
    "AgentError",
    "AuthenticationFailure",
    "AllModelsExhaustedError",
    "RateLimitedError",
    "RetriesExhaustedError",
]


class FailureKind(Enum):
    """Classification of a failed completion attempt."""

    RATE_LIMITED = "rate_limited"
    """Quota or overload signal; recoverable by rotating to another model."""

    MODEL_UNAVAILABLE = "model_unavailable"
    """Model missing or decommissioned; handled exactly like a rate limit."""

    AUTHENTICATION = "authentication"
    """Credentials rejected; retrying cannot help."""

    TRANSIENT = "transient"
    """Anything else; retried with a self-correction hint."""

    @property
    def rotates_model(self) -> bool:
        return self in (FailureKind.RATE_LIMITED, FailureKind.MODEL_UNAVAILABLE)


AUTH_MARKERS: tuple[str, ...] = (
    "invalid_api_key",
    "invalid api key",
    "unauthorized",
    "invalid credential",
)
RATE_LIMIT_MARKERS: tuple[str, ...] = (
    "rate_limit",
    "rate limit",
    "quota",
    "overloaded",
)
UNAVAILABLE_MARKERS: tuple[str, ...] = (
    "not found",
    "does not exist",
    "decommissioned",
    "model_not_active",
    "unavailable",
)
CONTEXT_OVERFLOW_MARKERS: tuple[str, ...] = (
    "reduce the length",
    "context_length_exceeded",
)

_STATUS_KINDS: dict[int, FailureKind] = {
    401: FailureKind.AUTHENTICATION,
    404: FailureKind.MODEL_UNAVAILABLE,
    429: FailureKind.RATE_LIMITED,
}
_STATUS_TOKEN_RE = re.compile(r"\b(401|404|429)\b")


def failure_text(error: BaseException) -> str:
    """Return the text used for marker matching and self-correction notes."""

    text = str(error)
    return text if text else type(error).__name__


def classify_failure(error: BaseException) -> FailureKind:
    """Classify a completion failure."""

    if isinstance(error, openai.AuthenticationError):
        return FailureKind.AUTHENTICATION
    if isinstance(error, openai.RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, openai.NotFoundError):
        return FailureKind.MODEL_UNAVAILABLE
    if isinstance(error, (openai.APITimeoutError, httpx.TimeoutException)):
        return FailureKind.TRANSIENT

    status = _status_code(error)
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]

    # Rotating kinds win: quota messages routinely quote token counts.
    lowered = failure_text(error).lower()
    quoted_status = {int(code) for code in _STATUS_TOKEN_RE.findall(lowered)}
    if 429 in quoted_status or any(marker in lowered for marker in RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if 404 in quoted_status or any(marker in lowered for marker in UNAVAILABLE_MARKERS):
        return FailureKind.MODEL_UNAVAILABLE
    if 401 in quoted_status or any(marker in lowered for marker in AUTH_MARKERS):
        return FailureKind.AUTHENTICATION
    return FailureKind.TRANSIENT


def is_context_overflow(error: BaseException) -> bool:
    lowered = failure_text(error).lower()
    return any(marker in lowered for marker in CONTEXT_OVERFLOW_MARKERS)


def _status_code(error: BaseException) -> int | None:
    value: Any = getattr(error, "status_code", None)
    if value is None:
        value = getattr(error, "status", None)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


# -----------------------------------------------------------------------------
# Terminal run failures
# -----------------------------------------------------------------------------


class AgentError(Exception):
    """Base class for run failures surfaced to the host.

    Attributes:
        hint: Short guidance the host shows next to the message.
    """

    hint: str = ""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class AuthenticationFailure(AgentError):
    """The completion service rejected the configured credentials."""

    hint = (
        "Fix your credentials: get a key at https://console.groq.com/keys, then set "
        "GROQ_API_KEY or run `vinsa --set api_key=<key> --save`."
    )


class AllModelsExhaustedError(AgentError):
    """Every attempt in the rotation budget was spent."""

    hint = "All models are rate limited or unavailable. Wait a minute and try again."


class RetriesExhaustedError(AgentError):
    """Non rate-limit failures exceeded the configured retry budget."""

    hint = "The request kept failing. Try again shortly."

    def __init__(self, message: str, *, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class RateLimitedError(AgentError):
    """A single-shot completion hit a rate limit or an unavailable model.

    Raised by phases that do not rotate; the model is already marked as cooling
    down, so the next attempt starts on a different one.
    """

    hint = "The model is rate limited right now. Try again shortly."

    def __init__(self, message: str, *, model_id: str | None = None) -> None:
        super().__init__(message)
        self.model_id = model_id
