"""Error taxonomy shared by the memory store, providers and dispatcher.

Internal layers raise these exceptions; ``OrchestrationContext`` turns
them into typed result models before anything reaches the host.
"""

from __future__ import annotations

from enum import Enum


class ContextPilotError(Exception):
    """Base class for all contextpilot errors."""


class InitError(ContextPilotError):
    """The memory store cannot acquire its storage location."""


class MemoryIOError(ContextPilotError):
    """A persistence read or write failed.

    Non-fatal: in-memory state is intact and the write is retried on the
    next opportunity.
    """


class ImportValidationError(ContextPilotError):
    """An ``import`` payload did not match the memory document shape."""


class ProviderErrorKind(str, Enum):
    """Normalized provider failure categories."""

    unauthorized = "unauthorized"
    rate_limited = "rate_limited"
    timeout = "timeout"
    unreachable = "unreachable"
    malformed_response = "malformed_response"
    unknown = "unknown"


class ProviderError(ContextPilotError):
    """Raised by provider adapters; always recoverable via fallback."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"ProviderError(kind={self.kind.value!r}, provider={self.provider!r}, "
            f"status_code={self.status_code!r}, message={str(self)!r})"
        )


class ExhaustedFailure(ContextPilotError):
    """Every provider in the chain failed, including the local fallback.

    The local adapter never fails on its own, so this signals a bug in it
    rather than a network condition.
    """

    def __init__(self, attempts: list) -> None:
        kinds = ", ".join(
            f"{a.provider}={a.error_kind.value if a.error_kind else 'ok'}"
            for a in attempts
        )
        super().__init__(f"all providers failed: {kinds or 'empty chain'}")
        self.attempts = attempts


class RequestSuperseded(ContextPilotError):
    """A newer request of the same action type replaced this one."""

    def __init__(self, action: str) -> None:
        super().__init__(f"request superseded by a newer '{action}' request")
        self.action = action
