"""ContextPilot: FastMCP v2 server exposing the orchestration operations.

Tools delegate to a single ``OrchestrationContext``. Call ``configure()``
before using the server and ``shutdown()`` to flush pending writes.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable
from collections.abc import Mapping
from time import perf_counter
from typing import TypeVar

from fastmcp import FastMCP

from contextpilot.config import CacheConfig
from contextpilot.config import DispatchConfig
from contextpilot.config import MemoryConfig
from contextpilot.config import PromptConfig
from contextpilot.engine import FallbackDispatcher
from contextpilot.host import CompilationReport
from contextpilot.host import CompileResult
from contextpilot.memory.schemas import CursorPosition
from contextpilot.models.schemas import CompletionResult
from contextpilot.models.schemas import ContextUpdateResult
from contextpilot.models.schemas import DiagnosisResult
from contextpilot.models.schemas import ExportResult
from contextpilot.models.schemas import FileUpdateResult
from contextpilot.models.schemas import GenerationResult
from contextpilot.models.schemas import MemoryWriteResult
from contextpilot.models.schemas import OperationResult
from contextpilot.models.schemas import ProjectResult
from contextpilot.models.schemas import RefactorResult
from contextpilot.models.schemas import ReviewResult
from contextpilot.models.schemas import SearchResponse
from contextpilot.models.schemas import StatsResult
from contextpilot.observability import record_latency
from contextpilot.orchestrator import OrchestrationContext
from contextpilot.providers.base import ProviderAdapter

mcp = FastMCP("ContextPilot")

R = TypeVar("R", bound=OperationResult)

# ---------------------------------------------------------------------------
# Orchestration context (set via configure())
# ---------------------------------------------------------------------------

_ctx: OrchestrationContext | None = None


async def configure(
    *,
    adapters: list[ProviderAdapter] | None = None,
    env: Mapping[str, str] | None = None,
    env_file: str | os.PathLike[str] | None = None,
    timeout_seconds: float = 30.0,
    dispatch_config: DispatchConfig | None = None,
    memory_config: MemoryConfig | None = None,
    prompt_config: PromptConfig | None = None,
    cache_config: CacheConfig | None = None,
) -> OrchestrationContext:
    """Build the orchestration context.

    With *adapters* the fallback chain is taken as given; otherwise it is
    resolved from environment credentials (and an optional ``.env``).
    Must be called before the MCP tools can function.
    """
    global _ctx
    if _ctx is not None:
        try:
            await _ctx.close()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass

    if adapters is not None:
        _ctx = OrchestrationContext(
            FallbackDispatcher.from_adapters(adapters, timeout_seconds=timeout_seconds),
            memory_config=memory_config,
            prompt_config=prompt_config,
            cache_config=cache_config,
        )
    else:
        _ctx = OrchestrationContext.from_environment(
            env=env,
            env_file=env_file,
            dispatch_config=dispatch_config,
            memory_config=memory_config,
            prompt_config=prompt_config,
            cache_config=cache_config,
        )
    return _ctx


async def shutdown() -> None:
    """Flush pending writes and release the orchestration context."""
    global _ctx
    if _ctx is not None:
        await _ctx.close()
        _ctx = None


def _get_ctx() -> OrchestrationContext:
    """Return the orchestration context or raise."""
    if _ctx is None:
        raise RuntimeError("Orchestration context not configured. Call configure() first.")
    return _ctx


async def _timed(tool: str, call: Awaitable[R]) -> R:
    start = perf_counter()
    ok = False
    try:
        result = await call
        ok = result.status == "ok"
        return result
    finally:
        record_latency(
            operation=f"mcp.{tool}",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


# ---------------------------------------------------------------------------
# Project and editor events
# ---------------------------------------------------------------------------


@mcp.tool
async def initialize_project(root_path: str) -> ProjectResult:
    """Create or load the persistent memory of the project at root_path.

    Args:
        root_path: Project root directory.
    """
    return await _timed("initialize_project", _get_ctx().initialize_project(root_path))


@mcp.tool
async def update_file(path: str, content: str) -> FileUpdateResult:
    """Re-index a file from its latest content (on open or save).

    Args:
        path: File path, absolute or relative to the project root.
        content: Full text content.
    """
    return await _timed("update_file", _get_ctx().update_file(path, content))


@mcp.tool
async def open_file(path: str, content: str) -> FileUpdateResult:
    """Index a file and make it the current file of the editing context."""
    return await _timed("open_file", _get_ctx().open_file(path, content))


@mcp.tool
async def update_context(
    current_file: str | None = None,
    line: int | None = None,
    column: int | None = None,
    selected_text: str | None = None,
    compilation_state: str | None = None,
    last_error: str | None = None,
) -> ContextUpdateResult:
    """Merge the provided fields into the editing context.

    Omitted arguments leave the stored value unchanged. A missing line or
    column keeps the stored coordinate.
    """
    ctx = _get_ctx()
    partial: dict = {}
    if current_file is not None:
        partial["current_file"] = current_file
    if line is not None or column is not None:
        stored = (
            ctx.store.build_ai_context().context.cursor
            if ctx.store.initialized
            else CursorPosition()
        )
        partial["cursor"] = {
            "line": stored.line if line is None else line,
            "column": stored.column if column is None else column,
        }
    if selected_text is not None:
        partial["selected_text"] = selected_text
    if compilation_state is not None:
        partial["compilation_state"] = compilation_state
    if last_error is not None:
        partial["last_error"] = last_error
    return await _timed("update_context", ctx.update_context(partial))


# ---------------------------------------------------------------------------
# AI actions
# ---------------------------------------------------------------------------


@mcp.tool
async def request_completion(
    line: int | None = None,
    column: int | None = None,
    selection: str | None = None,
) -> CompletionResult:
    """Suggest completions at the cursor.

    Args:
        line: 1-based cursor line; defaults to the stored cursor.
        column: 1-based cursor column; defaults to the stored cursor.
        selection: Selected text; defaults to the stored selection.
    """
    cursor = None
    if line is not None and column is not None:
        cursor = CursorPosition(line=line, column=column)
    return await _timed(
        "request_completion", _get_ctx().request_completion(cursor, selection)
    )


@mcp.tool
async def request_refactor(code: str, intent: str = "") -> RefactorResult:
    """Refactor code while keeping its behavior.

    Args:
        code: Code to refactor.
        intent: Optional refactoring goal.
    """
    return await _timed("request_refactor", _get_ctx().request_refactor(code, intent))


@mcp.tool
async def request_diagnosis(error_message: str, code: str = "") -> DiagnosisResult:
    """Explain a compiler error and propose a fix."""
    return await _timed(
        "request_diagnosis", _get_ctx().request_diagnosis(error_message, code)
    )


@mcp.tool
async def request_generation(prompt: str) -> GenerationResult:
    """Generate a small project (files, main file, explanation) from a description."""
    return await _timed("request_generation", _get_ctx().request_generation(prompt))


@mcp.tool
async def request_review(
    code: str, focus_areas: list[str] | None = None
) -> ReviewResult:
    """Review code for issues and improvement suggestions."""
    return await _timed(
        "request_review", _get_ctx().request_review(code, focus_areas)
    )


@mcp.tool
async def diagnose_compilation(
    source: str,
    success: bool,
    stdout: str = "",
    stderr: str = "",
) -> CompilationReport:
    """Record a compilation run and diagnose its errors.

    Args:
        source: Compiled source text.
        success: Whether the compiler succeeded.
        stdout: Compiler standard output.
        stderr: Compiler error output; fed into diagnosis on failure.
    """
    outcome = CompileResult(success=success, stdout=stdout, stderr=stderr)
    return await _timed(
        "diagnose_compilation", _get_ctx().report_compilation(source, outcome)
    )


# ---------------------------------------------------------------------------
# Memory administration
# ---------------------------------------------------------------------------


@mcp.tool
async def search_memory(
    query: str,
    scope: str = "all",
    limit: int | None = None,
) -> SearchResponse:
    """Case-insensitive search across files, symbols, history and interactions.

    Args:
        query: Substring to look for.
        scope: all, files, symbols, history or interactions.
        limit: Max results returned.
    """
    start = perf_counter()
    result = _get_ctx().search(query, scope, limit=limit)
    record_latency(
        operation="mcp.search_memory",
        duration_ms=(perf_counter() - start) * 1000,
        ok=result.status == "ok",
    )
    return result


@mcp.tool
async def memory_stats() -> StatsResult:
    """Counters of the project memory and the response caches."""
    return _get_ctx().stats()


@mcp.tool
async def export_memory() -> ExportResult:
    """Serialize the whole project memory as JSON."""
    return _get_ctx().export_memory()


@mcp.tool
async def import_memory(document: str) -> MemoryWriteResult:
    """Merge-restore a previously exported memory document.

    A malformed document is rejected and the current memory is kept.
    """
    return await _timed("import_memory", _get_ctx().import_memory(document))


@mcp.tool
async def clear_memory() -> MemoryWriteResult:
    """Reset files, context and logs of the current project."""
    return await _timed("clear_memory", _get_ctx().clear_memory())
