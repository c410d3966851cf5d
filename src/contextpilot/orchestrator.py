"""The orchestration context: one object wiring memory, prompts and providers.

``OrchestrationContext`` is created once when a project is opened and
closed (flushing pending writes) when it is torn down. It is the only
entry point the host layer talks to. Every public operation returns a
typed result model; provider failures, persistence failures and
superseded requests are reported through ``status``/``error_code`` and
never escape as exceptions.

Request flow for an AI action::

    snapshot = store.build_ai_context()
    cache lookup  -> hit: return the cached result
    builder       -> bounded PromptPayload
    supersession  -> cancels an older in-flight request of the same action
    dispatcher    -> provider chain, first success wins
    parsing       -> action result, cached, logged as an interaction
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from collections.abc import Mapping
from time import perf_counter
from typing import Any
from typing import TypeVar

from pydantic import ValidationError

from contextpilot.config import CacheConfig
from contextpilot.config import DispatchConfig
from contextpilot.config import MemoryConfig
from contextpilot.config import PromptConfig
from contextpilot.engine.cache import action_fingerprint
from contextpilot.engine.cache import completion_fingerprint
from contextpilot.engine.cache import CompletionCache
from contextpilot.engine.cache import Fingerprint
from contextpilot.engine.dispatcher import FallbackDispatcher
from contextpilot.engine.parsing import parse_diagnosis
from contextpilot.engine.parsing import parse_generation
from contextpilot.engine.parsing import parse_refactor
from contextpilot.engine.parsing import parse_review
from contextpilot.engine.prompt_builder import PromptContextBuilder
from contextpilot.engine.schemas import DispatchResult
from contextpilot.engine.supersession import RequestSupersession
from contextpilot.errors import ExhaustedFailure
from contextpilot.errors import ImportValidationError
from contextpilot.errors import InitError
from contextpilot.errors import MemoryIOError
from contextpilot.errors import RequestSuperseded
from contextpilot.host import CompilationReport
from contextpilot.host import CompileResult
from contextpilot.host import CompilerRunner
from contextpilot.host import ExecutionReport
from contextpilot.host import FileDialogResult
from contextpilot.host import RunResult
from contextpilot.memory.schemas import AIContextSnapshot
from contextpilot.memory.schemas import CursorPosition
from contextpilot.memory.schemas import EditingContextUpdate
from contextpilot.memory.schemas import InteractionType
from contextpilot.memory.schemas import SearchScope
from contextpilot.memory.store import ProjectMemoryStore
from contextpilot.models.schemas import ActionResult
from contextpilot.models.schemas import CompletionResult
from contextpilot.models.schemas import ContextUpdateResult
from contextpilot.models.schemas import DiagnosisResult
from contextpilot.models.schemas import EXHAUSTED
from contextpilot.models.schemas import ExportResult
from contextpilot.models.schemas import FileUpdateResult
from contextpilot.models.schemas import GenerationResult
from contextpilot.models.schemas import INIT_ERROR
from contextpilot.models.schemas import INVALID_IMPORT
from contextpilot.models.schemas import INVALID_INPUT
from contextpilot.models.schemas import IO_ERROR
from contextpilot.models.schemas import MemoryWriteResult
from contextpilot.models.schemas import NOT_INITIALIZED
from contextpilot.models.schemas import OperationResult
from contextpilot.models.schemas import ProjectResult
from contextpilot.models.schemas import RefactorResult
from contextpilot.models.schemas import ReviewResult
from contextpilot.models.schemas import SearchResponse
from contextpilot.models.schemas import StatsResult
from contextpilot.models.schemas import SUPERSEDED
from contextpilot.observability import record_latency
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.factory import build_provider_chain
from contextpilot.providers.factory import load_environment
from contextpilot.providers.factory import provider_configs_from_env

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=OperationResult)
A = TypeVar("A", bound=ActionResult)

_NOT_INITIALIZED_MESSAGE = "No project is open. Call initialize_project first."
_DEGRADED_MESSAGE = "Persistence failed; changes are kept in memory only."
_HISTORY_DETAIL_CHARS = 2000


def _not_initialized(result_cls: type[R], **fields: Any) -> R:
    return result_cls(
        status="error",
        error_code=NOT_INITIALIZED,
        message=_NOT_INITIALIZED_MESSAGE,
        **fields,
    )


def _degraded(result_cls: type[R], exc: MemoryIOError, **fields: Any) -> R:
    logger.warning("operating memory-only: %s", exc)
    return result_cls(
        status="degraded",
        error_code=IO_ERROR,
        message=f"{_DEGRADED_MESSAGE} ({exc})",
        persisted=False,
        **fields,
    )


class OrchestrationContext:
    """Explicit, single owner of all subsystem instances for one project."""

    def __init__(
        self,
        dispatcher: FallbackDispatcher,
        *,
        store: ProjectMemoryStore | None = None,
        builder: PromptContextBuilder | None = None,
        memory_config: MemoryConfig | None = None,
        prompt_config: PromptConfig | None = None,
        cache_config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache_config = cache_config or CacheConfig()
        self.store = store or ProjectMemoryStore(memory_config)
        self.builder = builder or PromptContextBuilder(prompt_config)
        self.dispatcher = dispatcher
        self.completion_cache = CompletionCache(
            ttl_seconds=self.cache_config.completion_ttl_seconds,
            max_entries=self.cache_config.max_entries,
            name="completion",
            clock=clock,
        )
        self.action_cache = CompletionCache(
            ttl_seconds=self.cache_config.action_ttl_seconds,
            max_entries=self.cache_config.max_entries,
            name="action",
            clock=clock,
        )
        self._supersession = RequestSupersession()

    @classmethod
    def from_environment(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str | os.PathLike[str] | None = None,
        dispatch_config: DispatchConfig | None = None,
        memory_config: MemoryConfig | None = None,
        prompt_config: PromptConfig | None = None,
        cache_config: CacheConfig | None = None,
    ) -> OrchestrationContext:
        """Resolve the provider chain from credentials and build a context."""
        if env is None:
            load_environment(env_file)
        chain = build_provider_chain(provider_configs_from_env(env), dispatch_config)
        return cls(
            FallbackDispatcher(chain),
            memory_config=memory_config,
            prompt_config=prompt_config,
            cache_config=cache_config,
        )

    # ------------------------------------------------------------------
    # Project lifecycle
    # ------------------------------------------------------------------

    async def initialize_project(self, root_path: str) -> ProjectResult:
        if self.store.initialized:
            try:
                await self.store.flush()
            except MemoryIOError as exc:
                logger.warning("pending writes lost when switching project: %s", exc)
        try:
            project = await self.store.initialize(root_path)
        except InitError as exc:
            logger.error("project initialization failed root=%s: %s", root_path, exc)
            return ProjectResult(status="error", error_code=INIT_ERROR, message=str(exc))
        self.clear_caches()
        return ProjectResult(project=project)

    async def close(self) -> MemoryWriteResult:
        """Cancel in-flight requests and flush pending writes."""
        await self._supersession.cancel_all()
        self.clear_caches()
        if not self.store.initialized:
            return MemoryWriteResult()
        try:
            await self.store.close()
        except MemoryIOError as exc:
            return _degraded(MemoryWriteResult, exc)
        return MemoryWriteResult()

    # ------------------------------------------------------------------
    # Editor events
    # ------------------------------------------------------------------

    async def update_file(self, path: str, content: str) -> FileUpdateResult:
        if not self.store.initialized:
            return _not_initialized(FileUpdateResult)
        try:
            record = await self.store.update_file(path, content)
        except MemoryIOError as exc:
            return _degraded(FileUpdateResult, exc, file=self.store.file_info(path))
        return FileUpdateResult(file=record)

    async def open_file(self, path: str, content: str) -> FileUpdateResult:
        """Index *path* and make it the current file."""
        if not self.store.initialized:
            return _not_initialized(FileUpdateResult)
        result = await self.update_file(path, content)
        try:
            await self.store.update_context(
                EditingContextUpdate(
                    current_file=path,
                    cursor=CursorPosition(line=1, column=1),
                    selected_text="",
                )
            )
            await self.store.add_history(
                "file_open", {"path": self.store.relative_path(path), "size": len(content)}
            )
        except MemoryIOError as exc:
            return _degraded(FileUpdateResult, exc, file=result.file)
        return result

    async def open_from_dialog(self, dialog: FileDialogResult) -> FileUpdateResult:
        if not dialog.success or dialog.path is None:
            return FileUpdateResult(
                status="error",
                error_code=INVALID_INPUT,
                message=dialog.error or "File dialog was cancelled.",
                persisted=False,
            )
        return await self.open_file(dialog.path, dialog.content or "")

    async def update_context(
        self, partial: EditingContextUpdate | dict[str, Any]
    ) -> ContextUpdateResult:
        if not self.store.initialized:
            return _not_initialized(ContextUpdateResult)
        try:
            context = await self.store.update_context(partial)
        except ValidationError as exc:
            return ContextUpdateResult(
                status="error",
                error_code=INVALID_INPUT,
                message=f"invalid context update: {exc.errors()[0]['msg']}",
                persisted=False,
            )
        except MemoryIOError as exc:
            return _degraded(
                ContextUpdateResult, exc, context=self.store.build_ai_context().context
            )
        return ContextUpdateResult(context=context)

    # ------------------------------------------------------------------
    # AI actions
    # ------------------------------------------------------------------

    async def request_completion(
        self,
        cursor: CursorPosition | None = None,
        selection: str | None = None,
    ) -> CompletionResult:
        """Suggest completions at *cursor* (defaults to the stored cursor)."""
        if not self.store.initialized:
            return _not_initialized(CompletionResult)
        snapshot = self.store.build_ai_context()
        cursor = cursor or snapshot.context.cursor
        selection = snapshot.context.selected_text if selection is None else selection
        current = snapshot.current_file
        content = current.content if current else ""
        fingerprint = completion_fingerprint(
            current.path if current else None,
            cursor.line,
            cursor.column,
            selection,
            len(content),
            content if self.cache_config.strict_fingerprint else None,
        )

        def _shape(dispatched: DispatchResult) -> CompletionResult:
            response = dispatched.response
            return CompletionResult(
                text=response.text,
                suggestions=response.suggestions,
                model=response.model,
            )

        return await self._perform(
            PromptAction.completion,
            CompletionResult,
            cache=self.completion_cache,
            fingerprint=fingerprint,
            snapshot=snapshot,
            build=lambda snap: self.builder.build_completion(snap, cursor, selection),
            shape=_shape,
        )

    async def request_refactor(self, code: str, intent: str = "") -> RefactorResult:
        if not self.store.initialized:
            return _not_initialized(RefactorResult)
        return await self._perform(
            PromptAction.refactor,
            RefactorResult,
            cache=self.action_cache,
            fingerprint=action_fingerprint("refactor", code, intent),
            build=lambda snap: self.builder.build_refactor(snap, code, intent),
            shape=lambda dispatched: parse_refactor(dispatched.response, code),
            metadata={"intent": intent},
        )

    async def request_diagnosis(
        self, error_message: str, code: str = ""
    ) -> DiagnosisResult:
        if not self.store.initialized:
            return _not_initialized(DiagnosisResult)
        return await self._perform(
            PromptAction.diagnosis,
            DiagnosisResult,
            cache=self.action_cache,
            fingerprint=action_fingerprint("diagnosis", error_message, code),
            build=lambda snap: self.builder.build_diagnosis(snap, error_message, code),
            shape=lambda dispatched: parse_diagnosis(dispatched.response),
            metadata={"error_message": error_message},
        )

    async def request_generation(self, prompt_text: str) -> GenerationResult:
        if not self.store.initialized:
            return _not_initialized(GenerationResult)
        if not prompt_text.strip():
            return GenerationResult(
                status="error",
                error_code=INVALID_INPUT,
                message="Generation prompt must not be empty.",
            )
        return await self._perform(
            PromptAction.generation,
            GenerationResult,
            cache=self.action_cache,
            fingerprint=action_fingerprint("generation", prompt_text),
            build=lambda snap: self.builder.build_generation(snap, prompt_text),
            shape=lambda dispatched: parse_generation(dispatched.response),
        )

    async def request_review(
        self, code: str, focus_areas: list[str] | None = None
    ) -> ReviewResult:
        if not self.store.initialized:
            return _not_initialized(ReviewResult)
        focus = list(focus_areas or [])
        return await self._perform(
            PromptAction.review,
            ReviewResult,
            cache=self.action_cache,
            fingerprint=action_fingerprint("review", code, ",".join(focus)),
            build=lambda snap: self.builder.build_review(snap, code, focus),
            shape=lambda dispatched: parse_review(dispatched.response),
            metadata={"focus_areas": focus},
        )

    async def _perform(
        self,
        action: PromptAction,
        result_cls: type[A],
        *,
        cache: CompletionCache,
        fingerprint: Fingerprint,
        build: Callable[[AIContextSnapshot], PromptPayload],
        shape: Callable[[DispatchResult], A],
        snapshot: AIContextSnapshot | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> A:
        start = perf_counter()
        ok = False
        try:
            entry = cache.get(fingerprint)
            if entry is not None:
                ok = True
                return entry.value.model_copy(deep=True, update={"cached": True})

            payload = build(snapshot or self.store.build_ai_context())
            try:
                dispatched = await self._supersession.run(
                    action.value, lambda: self.dispatcher.dispatch(payload)
                )
            except RequestSuperseded as exc:
                logger.debug("request superseded action=%s", action.value)
                return result_cls(status="superseded", error_code=SUPERSEDED, message=str(exc))
            except ExhaustedFailure as exc:
                logger.error("provider chain exhausted action=%s: %s", action.value, exc)
                return result_cls(
                    status="error",
                    error_code=EXHAUSTED,
                    message=str(exc),
                    attempts=list(exc.attempts),
                )

            result = shape(dispatched).model_copy(
                update={"provider": dispatched.provider, "attempts": dispatched.attempts}
            )
            cache.put(fingerprint, result)
            if action is not PromptAction.completion:
                result = await self._log_interaction(
                    action, payload, dispatched, result, metadata or {}
                )
            ok = True
            return result.model_copy(deep=True)
        finally:
            record_latency(
                operation=f"orchestrator.{action.value}",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _log_interaction(
        self,
        action: PromptAction,
        payload: PromptPayload,
        dispatched: DispatchResult,
        result: A,
        metadata: dict[str, Any],
    ) -> A:
        try:
            await self.store.add_interaction(
                InteractionType(action.value),
                payload.subject,
                dispatched.response.text,
                {
                    **metadata,
                    "provider": dispatched.provider,
                    "attempts": len(dispatched.attempts),
                    "truncated": payload.truncated,
                },
            )
        except MemoryIOError as exc:
            logger.warning("interaction not persisted action=%s: %s", action.value, exc)
            return result.model_copy(
                update={"error_code": IO_ERROR, "message": _DEGRADED_MESSAGE}
            )
        return result

    # ------------------------------------------------------------------
    # Compiler feed
    # ------------------------------------------------------------------

    async def diagnose_compilation(
        self,
        compiler: CompilerRunner,
        source: str,
        *,
        file_path: str | None = None,
    ) -> CompilationReport:
        """Compile *source* through the host's compiler and diagnose failures."""
        if file_path and self.store.initialized:
            await self.update_file(file_path, source)
        outcome = await compiler.compile(source)
        return await self.report_compilation(source, outcome)

    async def report_compilation(
        self, source: str, outcome: CompileResult
    ) -> CompilationReport:
        """Record a compile result and diagnose its errors."""
        if not self.store.initialized:
            return _not_initialized(CompilationReport, compilation=outcome)
        error_text = outcome.stderr.strip() if not outcome.success else ""
        if not outcome.success and not error_text:
            error_text = "Compilation failed"

        persisted = True
        try:
            await self.store.add_history(
                "compilation",
                {
                    "success": outcome.success,
                    "output": (outcome.stdout or outcome.stderr)[:_HISTORY_DETAIL_CHARS],
                },
            )
            await self.store.update_context(
                EditingContextUpdate(
                    compilation_state="success" if outcome.success else "error",
                    last_error=error_text or None,
                )
            )
        except MemoryIOError as exc:
            logger.warning("compilation not persisted: %s", exc)
            persisted = False

        diagnosis = None
        if not outcome.success:
            diagnosis = await self.request_diagnosis(error_text, source)
        return CompilationReport(
            status="ok" if persisted else "degraded",
            error_code=None if persisted else IO_ERROR,
            message=None if persisted else _DEGRADED_MESSAGE,
            compilation=outcome,
            diagnosis=diagnosis,
            persisted=persisted,
        )

    async def execute_program(
        self, runner: CompilerRunner, source: str
    ) -> ExecutionReport:
        """Run *source* and record successful executions in the history."""
        outcome: RunResult = await runner.run(source)
        if not self.store.initialized:
            return _not_initialized(ExecutionReport, execution=outcome)
        if outcome.success:
            try:
                await self.store.add_history(
                    "execution",
                    {"success": True, "output": outcome.output[:_HISTORY_DETAIL_CHARS]},
                )
            except MemoryIOError as exc:
                return _degraded(ExecutionReport, exc, execution=outcome)
        return ExecutionReport(execution=outcome)

    # ------------------------------------------------------------------
    # Memory administration
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        scope: SearchScope | str = SearchScope.all,
        *,
        limit: int | None = None,
    ) -> SearchResponse:
        if not self.store.initialized:
            return _not_initialized(SearchResponse)
        try:
            results = self.store.search(query, scope, limit=limit)
        except ValueError:
            return SearchResponse(
                status="error",
                error_code=INVALID_INPUT,
                message=f"Unknown search scope '{scope}'.",
            )
        return SearchResponse(results=results)

    def stats(self) -> StatsResult:
        return StatsResult(
            memory=self.store.stats(),
            caches={
                cache.name: cache.stats().model_dump()
                for cache in (self.completion_cache, self.action_cache)
            },
        )

    def export_memory(self) -> ExportResult:
        if not self.store.initialized:
            return _not_initialized(ExportResult)
        return ExportResult(document=self.store.export())

    async def import_memory(self, data: str | bytes | dict[str, Any]) -> MemoryWriteResult:
        if not self.store.initialized:
            return _not_initialized(MemoryWriteResult, persisted=False)
        try:
            await self.store.import_data(data)
        except ImportValidationError as exc:
            return MemoryWriteResult(
                status="error",
                error_code=INVALID_IMPORT,
                message=str(exc),
                persisted=False,
            )
        except MemoryIOError as exc:
            self.clear_caches()
            return _degraded(MemoryWriteResult, exc)
        self.clear_caches()
        return MemoryWriteResult()

    async def clear_memory(self) -> MemoryWriteResult:
        if not self.store.initialized:
            return _not_initialized(MemoryWriteResult, persisted=False)
        self.clear_caches()
        try:
            await self.store.clear()
        except MemoryIOError as exc:
            return _degraded(MemoryWriteResult, exc)
        return MemoryWriteResult()

    def clear_caches(self) -> None:
        self.completion_cache.clear()
        self.action_cache.clear()
