"""Pydantic models for the host-facing interface.

Every operation of ``OrchestrationContext`` (and therefore every MCP tool)
returns one of these. Failures are reported through ``status`` /
``error_code`` / ``message`` rather than raised.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field

from contextpilot.errors import ProviderErrorKind
from contextpilot.memory.schemas import EditingContext
from contextpilot.memory.schemas import FileRecord
from contextpilot.memory.schemas import MemoryStats
from contextpilot.memory.schemas import Project
from contextpilot.memory.schemas import SearchResult
from contextpilot.providers.base import Suggestion

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

NOT_INITIALIZED = "not_initialized"
INIT_ERROR = "init_error"
IO_ERROR = "io_error"
INVALID_IMPORT = "invalid_import"
INVALID_INPUT = "invalid_input"
EXHAUSTED = "exhausted"
SUPERSEDED = "superseded"


class OperationResult(BaseModel):
    """Common outcome envelope."""

    status: str = Field(
        default="ok",
        description="Outcome status (ok, degraded, superseded, error).",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable failure code when status is not ok.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable detail for notifications.",
    )


# ---------------------------------------------------------------------------
# AI actions
# ---------------------------------------------------------------------------


class AttemptRecord(BaseModel):
    """One provider attempt made by the fallback dispatcher."""

    provider: str
    error_kind: ProviderErrorKind | None = Field(
        default=None,
        description="Failure category, or None for the successful attempt.",
    )
    message: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class ActionResult(OperationResult):
    """Fields shared by completion, refactor, diagnosis, generation and review."""

    provider: str | None = Field(
        default=None,
        description="Name of the provider that produced the result.",
    )
    cached: bool = Field(
        default=False,
        description="Whether the result was served from the response cache.",
    )
    attempts: list[AttemptRecord] = Field(
        default_factory=list,
        description="Provider attempts in chain order, failures first.",
    )


class CompletionResult(ActionResult):
    text: str = ""
    suggestions: list[Suggestion] = Field(default_factory=list)
    model: str | None = None


class RefactorResult(ActionResult):
    refactored_code: str = ""
    explanation: str = ""
    changes: list[str] = Field(default_factory=list)


class DiagnosisResult(ActionResult):
    diagnosis: str = ""
    suggested_fix: str = ""
    explanation: str = ""


class GeneratedFile(BaseModel):
    """One file proposed by a generation request."""

    name: str
    content: str
    purpose: str = ""


class GenerationResult(ActionResult):
    files: list[GeneratedFile] = Field(default_factory=list)
    main_file: str | None = None
    explanation: str = ""


class ReviewResult(ActionResult):
    review: str = ""
    suggestions: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Memory operations
# ---------------------------------------------------------------------------


class ProjectResult(OperationResult):
    project: Project | None = None


class FileUpdateResult(OperationResult):
    file: FileRecord | None = None
    persisted: bool = Field(
        default=True,
        description="False when the write failed and the store runs memory-only.",
    )


class ContextUpdateResult(OperationResult):
    context: EditingContext | None = None
    persisted: bool = True


class SearchResponse(OperationResult):
    results: list[SearchResult] = Field(default_factory=list)


class StatsResult(OperationResult):
    memory: MemoryStats = Field(default_factory=lambda: MemoryStats(initialized=False))
    caches: dict[str, dict[str, Any]] = Field(default_factory=dict)


class ExportResult(OperationResult):
    document: str | None = Field(
        default=None,
        description="Indented JSON of the full memory document.",
    )


class MemoryWriteResult(OperationResult):
    """Outcome of import and clear."""

    persisted: bool = True
