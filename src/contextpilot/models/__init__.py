"""Models domain: host-facing result models."""

from contextpilot.models.schemas import ActionResult
from contextpilot.models.schemas import AttemptRecord
from contextpilot.models.schemas import CompletionResult
from contextpilot.models.schemas import ContextUpdateResult
from contextpilot.models.schemas import DiagnosisResult
from contextpilot.models.schemas import ExportResult
from contextpilot.models.schemas import FileUpdateResult
from contextpilot.models.schemas import GeneratedFile
from contextpilot.models.schemas import GenerationResult
from contextpilot.models.schemas import MemoryWriteResult
from contextpilot.models.schemas import OperationResult
from contextpilot.models.schemas import ProjectResult
from contextpilot.models.schemas import RefactorResult
from contextpilot.models.schemas import ReviewResult
from contextpilot.models.schemas import SearchResponse
from contextpilot.models.schemas import StatsResult

__all__ = [
    "ActionResult",
    "AttemptRecord",
    "CompletionResult",
    "ContextUpdateResult",
    "DiagnosisResult",
    "ExportResult",
    "FileUpdateResult",
    "GeneratedFile",
    "GenerationResult",
    "MemoryWriteResult",
    "OperationResult",
    "ProjectResult",
    "RefactorResult",
    "ReviewResult",
    "SearchResponse",
    "StatsResult",
]
