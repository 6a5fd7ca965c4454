# src/taskhive/core/errors.py

"""
Error taxonomy of the engine.

Everything raised across the engine boundary derives from TaskHiveError, so the
REST layer (or the console) can turn any failure into a user-facing message
with friendly_error_message().
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ProviderErrorKind(StrEnum):
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    AUTH = "auth"
    NOT_CONFIGURED = "not_configured"
    OTHER = "other"

    @property
    def is_transient(self) -> bool:
        return self in (
            ProviderErrorKind.OVERLOADED,
            ProviderErrorKind.RATE_LIMITED,
            ProviderErrorKind.TIMEOUT,
        )


class TaskHiveError(Exception):
    """Base class for every error the engine raises on purpose."""


class ProviderCallError(TaskHiveError):
    """The AI provider call failed and will not be retried (any more)."""

    def __init__(self, message: str, *, kind: ProviderErrorKind = ProviderErrorKind.OTHER, attempts: int = 1) -> None:
        super().__init__(message)
        self.kind = kind
        self.attempts = attempts


class TransientProviderError(ProviderCallError):
    """Overloaded / rate-limited / timed out, after the retry budget was spent."""


class ProviderNotConfiguredError(ProviderCallError):
    def __init__(self, message: str = "AI service not configured.") -> None:
        super().__init__(message, kind=ProviderErrorKind.NOT_CONFIGURED, attempts=0)


class MalformedResponseError(TaskHiveError):
    """The AI response could not be parsed even after repair."""

    def __init__(self, message: str, *, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class NotFoundError(TaskHiveError):
    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class RolePermissionError(TaskHiveError):
    """The actor lacks the group role required for the operation."""


class ValidationError(TaskHiveError):
    """Caller input rejected before anything was persisted."""


@dataclass(frozen=True, slots=True)
class ConsistencyViolation:
    """
    A counter decrement that would have gone below zero.

    Not an exception: the ledger clamps, logs this record and keeps going.
    It means an earlier transition was missed and the member needs reconciling.
    """

    member_id: str
    transition: str
    counter_before: int
    attempted_delta: int


RATE_LIMIT_WAIT_SECONDS = 30


def friendly_error_message(err: Exception) -> str:
    """Map an engine error to the text shown to the end user."""
    if isinstance(err, ProviderCallError):
        if err.kind == ProviderErrorKind.OVERLOADED:
            return (
                "AI service is currently experiencing high traffic. "
                "Please wait a few moments and try again, or ask for fewer tasks."
            )
        if err.kind == ProviderErrorKind.RATE_LIMITED:
            return f"Rate limit reached. Please wait {RATE_LIMIT_WAIT_SECONDS} seconds before trying again."
        if err.kind == ProviderErrorKind.TIMEOUT:
            return "AI service took too long to respond. Please try again shortly."
        if err.kind == ProviderErrorKind.NOT_CONFIGURED:
            return "AI service not configured. Set TASKHIVE_AI_API_KEY in .env."
        if err.kind == ProviderErrorKind.AUTH:
            return "AI service rejected the credentials. Check TASKHIVE_AI_API_KEY."
        return str(err).strip() or "Failed to process AI request. Please try again."

    if isinstance(err, MalformedResponseError):
        return (
            "AI response was incomplete or invalid. "
            "Please try rephrasing your question or asking for fewer tasks."
        )

    return str(err).strip() or err.__class__.__name__
