"""Memory domain: persistent project memory and structural fact index."""

from __future__ import annotations

from contextpilot.memory.extraction import extract_facts
from contextpilot.memory.extraction import extract_functions
from contextpilot.memory.extraction import extract_imports
from contextpilot.memory.extraction import extract_variables
from contextpilot.memory.schemas import AIContextSnapshot
from contextpilot.memory.schemas import AIInteraction
from contextpilot.memory.schemas import CursorPosition
from contextpilot.memory.schemas import EditingContext
from contextpilot.memory.schemas import EditingContextUpdate
from contextpilot.memory.schemas import FileFacts
from contextpilot.memory.schemas import FileRecord
from contextpilot.memory.schemas import FunctionFact
from contextpilot.memory.schemas import HistoryEntry
from contextpilot.memory.schemas import ImportFact
from contextpilot.memory.schemas import InteractionType
from contextpilot.memory.schemas import MemoryDocument
from contextpilot.memory.schemas import MemoryStats
from contextpilot.memory.schemas import Project
from contextpilot.memory.schemas import SearchResult
from contextpilot.memory.schemas import SearchScope
from contextpilot.memory.schemas import VariableFact
from contextpilot.memory.store import ProjectMemoryStore

__all__ = [
    "AIContextSnapshot",
    "AIInteraction",
    "CursorPosition",
    "EditingContext",
    "EditingContextUpdate",
    "FileFacts",
    "FileRecord",
    "FunctionFact",
    "HistoryEntry",
    "ImportFact",
    "InteractionType",
    "MemoryDocument",
    "MemoryStats",
    "Project",
    "ProjectMemoryStore",
    "SearchResult",
    "SearchScope",
    "VariableFact",
    "extract_facts",
    "extract_functions",
    "extract_imports",
    "extract_variables",
]
