"""Provider contract: prompt payload in, normalized response out.

Every adapter (remote or local) implements ``ProviderAdapter.complete``
and reports failures exclusively as ``ProviderError`` with a
``ProviderErrorKind`` so the dispatcher can fall back uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from pydantic import BaseModel
from pydantic import Field

# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


class PromptAction(str, Enum):
    """Editing intents the orchestration layer can request."""

    completion = "completion"
    refactor = "refactor"
    diagnosis = "diagnosis"
    generation = "generation"
    review = "review"


class PromptPayload(BaseModel):
    """A bounded prompt ready to send to any provider."""

    model_config = {"frozen": True}

    action: PromptAction
    system: str = Field(description="Static, action-specific instruction.")
    user: str = Field(description="Assembled, budget-bounded user payload.")
    subject: str = Field(
        default="",
        description="Primary material of the request (code, error or prompt text).",
    )
    hints: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured side data (identifier prefix, known symbols, intent).",
    )
    truncated: bool = Field(
        default=False,
        description="Whether optional context was dropped to fit the budget.",
    )

    def messages(self) -> list[dict[str, str]]:
        """Chat-style message list."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]

    def flat_prompt(self) -> str:
        """Single-string prompt for completion-style endpoints."""
        return f"{self.system}\n\n{self.user}"


@dataclass(frozen=True)
class CompletionOptions:
    """Per-request generation settings."""

    max_tokens: int = 2048
    temperature: float = 0.1
    timeout_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Response side
# ---------------------------------------------------------------------------


class Suggestion(BaseModel):
    """One insertable completion candidate."""

    label: str
    insert_text: str
    confidence: float = Field(ge=0.0, le=1.0)


class ProviderResponse(BaseModel):
    """Normalized provider output."""

    text: str = Field(description="Primary response text.")
    suggestions: list[Suggestion] = Field(default_factory=list)
    provider: str = Field(default="", description="Name of the answering adapter.")
    model: str | None = None
    raw: dict[str, Any] = Field(
        default_factory=dict,
        description="Provider payload kept for debugging.",
    )


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol implemented by every entry of the fallback chain."""

    name: str

    async def complete(
        self,
        prompt: PromptPayload,
        options: CompletionOptions,
    ) -> ProviderResponse: ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def suggestion_label(text: str) -> str:
    """Short label: first line up to the first ``;`` or ``{``."""
    first_line = text.strip().split("\n", 1)[0].strip()
    for stop in (";", "{"):
        if stop in first_line:
            return first_line.split(stop, 1)[0].strip() or first_line
    return first_line or "AI Suggestion"


def suggestions_from_text(text: str, *, limit: int = 5) -> list[Suggestion]:
    """Turn free-form completion text into ranked suggestions.

    Each non-empty, non-fence line becomes a candidate; confidence decays
    with rank.
    """
    suggestions: list[Suggestion] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("```"):
            continue
        confidence = round(max(0.1, 0.9 - 0.1 * len(suggestions)), 2)
        suggestions.append(
            Suggestion(
                label=suggestion_label(stripped),
                insert_text=stripped,
                confidence=confidence,
            )
        )
        if len(suggestions) >= limit:
            break
    return suggestions
