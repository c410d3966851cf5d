"""Contracts of the external collaborators consumed by the orchestrator.

The compiler/runner and the file dialogs belong to the desktop shell.
Only their result shapes matter here: compiler errors are fed into
diagnosis and dialog results into ``open_file``.
"""

from __future__ import annotations

from typing import Protocol
from typing import runtime_checkable

from pydantic import BaseModel
from pydantic import Field

from contextpilot.models.schemas import DiagnosisResult
from contextpilot.models.schemas import OperationResult


class CompileResult(BaseModel):
    success: bool
    stdout: str = ""
    stderr: str = ""


class RunResult(BaseModel):
    success: bool
    output: str = ""
    error: str = ""


class FileDialogResult(BaseModel):
    """Outcome of an open/save dialog."""

    success: bool
    path: str | None = None
    content: str | None = None
    error: str | None = None


@runtime_checkable
class CompilerRunner(Protocol):
    """Subprocess-backed compiler and program runner."""

    async def compile(self, source: str) -> CompileResult: ...

    async def run(self, source: str) -> RunResult: ...


class CompilationReport(OperationResult):
    """Compilation outcome plus the diagnosis of its errors, if any."""

    compilation: CompileResult
    diagnosis: DiagnosisResult | None = Field(
        default=None,
        description="Present when compilation failed.",
    )
    persisted: bool = True


class ExecutionReport(OperationResult):
    execution: RunResult
    persisted: bool = True
