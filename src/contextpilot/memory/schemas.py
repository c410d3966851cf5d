"""Memory domain data models.

Everything persisted to ``memory.json`` / ``index.json`` is defined here,
so a load followed by a save is loss-free for every declared field.
"""

from __future__ import annotations

import hashlib
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


def project_id_for(root_path: str) -> str:
    """Deterministic project identifier: MD5 hex of the root path."""
    return hashlib.md5(root_path.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


class Project(BaseModel):
    """Identity of the project a memory store is scoped to."""

    id: str = Field(
        description="MD5 hex digest of the resolved project root path.",
    )
    name: str = Field(
        description="Display name, the root directory's basename.",
    )
    path: str = Field(
        description="Absolute project root path.",
    )
    created_at: float = Field(
        default_factory=time.time,
        description="Unix epoch when the project memory was first created.",
    )
    last_modified: float = Field(
        default_factory=time.time,
        description="Unix epoch of the last successful save.",
    )


# ---------------------------------------------------------------------------
# Structural facts (derived, best-effort)
# ---------------------------------------------------------------------------


class FunctionFact(BaseModel):
    """A function definition found by pattern extraction."""

    model_config = {"frozen": True}

    return_type: str
    name: str
    line: int = Field(description="1-based source line.")


class VariableFact(BaseModel):
    """A variable declaration found by pattern extraction."""

    model_config = {"frozen": True}

    type: str
    name: str
    line: int = Field(description="1-based source line.")


class ImportFact(BaseModel):
    """An ``#include`` directive found by pattern extraction."""

    model_config = {"frozen": True}

    header: str
    line: int = Field(description="1-based source line.")


class FileFacts(BaseModel):
    """Structural index entry of one file."""

    functions: list[FunctionFact] = Field(default_factory=list)
    variables: list[VariableFact] = Field(default_factory=list)
    imports: list[ImportFact] = Field(default_factory=list)

    @property
    def import_names(self) -> list[str]:
        return [fact.header for fact in self.imports]


class FileRecord(FileFacts):
    """Latest reported content of one file plus its derived facts."""

    path: str = Field(
        description="Path relative to the project root (POSIX separators).",
    )
    content: str = Field(
        default="",
        description="Full text content as last reported by the editor.",
    )
    size: int = Field(
        default=0,
        description="Byte length of the UTF-8 encoded content.",
    )
    last_modified: float = Field(
        default_factory=time.time,
        description="Unix epoch of the last update.",
    )

    def facts(self) -> FileFacts:
        return FileFacts(
            functions=list(self.functions),
            variables=list(self.variables),
            imports=list(self.imports),
        )


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """One development action (compilation, execution, file_update...)."""

    action: str
    details: Any = None
    timestamp: float = Field(default_factory=time.time)


class InteractionType(str, Enum):
    """Kinds of AI interaction recorded in the interaction log."""

    completion = "completion"
    refactor = "refactor"
    diagnosis = "diagnosis"
    generation = "generation"
    review = "review"


class AIInteraction(BaseModel):
    """A prompt/response exchange with a provider."""

    type: InteractionType
    prompt: str
    response: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Editing context
# ---------------------------------------------------------------------------


class CursorPosition(BaseModel):
    """1-based line and column of the caret (0/0 when unknown)."""

    model_config = {"frozen": True}

    line: int = 0
    column: int = 0


class EditingContext(BaseModel):
    """Mutable editor state, overwritten by partial merges."""

    current_file: str | None = None
    cursor: CursorPosition = Field(default_factory=CursorPosition)
    selected_text: str = ""
    compilation_state: str = "idle"
    last_error: str | None = None
    suggestions: list[str] = Field(default_factory=list)


class EditingContextUpdate(BaseModel):
    """Partial ``EditingContext``; only explicitly set fields are merged."""

    model_config = {"extra": "forbid"}

    current_file: str | None = None
    cursor: CursorPosition | None = None
    selected_text: str | None = None
    compilation_state: str | None = None
    last_error: str | None = None
    suggestions: list[str] | None = None


# ---------------------------------------------------------------------------
# Persisted documents
# ---------------------------------------------------------------------------


class MemoryDocument(BaseModel):
    """Everything stored in ``memory.json``."""

    project: Project
    files: dict[str, FileRecord] = Field(default_factory=dict)
    context: EditingContext = Field(default_factory=EditingContext)
    history: list[HistoryEntry] = Field(default_factory=list)
    interactions: list[AIInteraction] = Field(default_factory=list)


class IndexDocument(BaseModel):
    """Derived facts stored in ``index.json``."""

    project_id: str
    files: dict[str, FileFacts] = Field(default_factory=dict)


class MemoryImport(BaseModel):
    """Shape accepted by ``ProjectMemoryStore.import_data``.

    Every section is optional; unknown top-level keys are rejected.
    """

    model_config = {"extra": "forbid"}

    project: Project | None = None
    files: dict[str, FileRecord] | None = None
    context: EditingContext | None = None
    history: list[HistoryEntry] | None = None
    interactions: list[AIInteraction] | None = None


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------


class AIContextSnapshot(BaseModel):
    """Immutable copy of the memory slice the prompt builder needs."""

    model_config = {"frozen": True}

    project_name: str
    context: EditingContext
    current_file: FileRecord | None = None
    recent_history: list[HistoryEntry] = Field(default_factory=list)
    recent_interactions: list[AIInteraction] = Field(default_factory=list)
    index: dict[str, FileFacts] = Field(default_factory=dict)

    @property
    def project_files(self) -> list[str]:
        return sorted(self.index)


class SearchScope(str, Enum):
    """Which parts of memory a search scans."""

    all = "all"
    files = "files"
    symbols = "symbols"
    history = "history"
    interactions = "interactions"


class SearchResult(BaseModel):
    """One search hit with enough locator data to jump to its origin."""

    kind: str = Field(
        description="file, function, variable, history or interaction.",
    )
    path: str | None = None
    line: int | None = None
    index: int | None = Field(
        default=None,
        description="Position in the history or interaction log.",
    )
    snippet: str = ""


class MemoryStats(BaseModel):
    """Summary counters of a memory store."""

    initialized: bool
    project_id: str | None = None
    project_name: str | None = None
    files_count: int = 0
    history_count: int = 0
    interactions_count: int = 0
    last_modified: float | None = None
    degraded: bool = False
