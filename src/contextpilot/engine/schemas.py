"""Engine-internal result models.

Intermediate representations passed between the dispatcher, the cache
and the orchestrator. Host-facing shapes live in
``contextpilot.models.schemas``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import Field

from contextpilot.models.schemas import AttemptRecord
from contextpilot.providers.base import ProviderResponse


class DispatchResult(BaseModel):
    """First successful provider response plus the attempts that led to it."""

    model_config = {"frozen": True}

    response: ProviderResponse
    provider: str = Field(description="Name of the provider that succeeded.")
    attempts: list[AttemptRecord] = Field(
        default_factory=list,
        description="Every attempt in chain order; the last one succeeded.",
    )

    @property
    def failed_attempts(self) -> list[AttemptRecord]:
        return [attempt for attempt in self.attempts if not attempt.ok]


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and its monotonic insertion time."""

    fingerprint: tuple[Any, ...]
    value: Any
    inserted_at: float


class CacheStats(BaseModel):
    name: str
    entries: int
    hits: int
    misses: int
    ttl_seconds: float
    max_entries: int
