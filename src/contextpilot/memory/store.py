"""File-backed project memory store.

One directory per project (``<root>/.contextpilot`` by default) holds two
JSON documents:

* ``memory.json``: Project, FileRecord map, EditingContext, history and
  AI interaction logs.
* ``index.json``: the derived structural facts per file.

All mutations are applied in memory first and then persisted under an
``asyncio.Lock`` using ``asyncio.to_thread`` with an atomic
write-then-rename, so concurrent updates never interleave into a torn
file. A failed write leaves the in-memory state intact, flags the store
as degraded and is retried on the next write.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from time import perf_counter
from typing import Any

from pydantic import ValidationError

from contextpilot.config import MemoryConfig
from contextpilot.errors import ImportValidationError
from contextpilot.errors import InitError
from contextpilot.errors import MemoryIOError
from contextpilot.memory.extraction import extract_facts
from contextpilot.memory.schemas import AIContextSnapshot
from contextpilot.memory.schemas import AIInteraction
from contextpilot.memory.schemas import EditingContext
from contextpilot.memory.schemas import EditingContextUpdate
from contextpilot.memory.schemas import FileRecord
from contextpilot.memory.schemas import HistoryEntry
from contextpilot.memory.schemas import IndexDocument
from contextpilot.memory.schemas import InteractionType
from contextpilot.memory.schemas import MemoryDocument
from contextpilot.memory.schemas import MemoryImport
from contextpilot.memory.schemas import MemoryStats
from contextpilot.memory.schemas import Project
from contextpilot.memory.schemas import project_id_for
from contextpilot.memory.schemas import SearchResult
from contextpilot.memory.schemas import SearchScope
from contextpilot.observability import record_latency

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 200


def _fresh_document(root: Path) -> MemoryDocument:
    now = time.time()
    return MemoryDocument(
        project=Project(
            id=project_id_for(str(root)),
            name=root.name,
            path=str(root),
            created_at=now,
            last_modified=now,
        )
    )


def _contains(haystack: str, needle: str) -> bool:
    return needle in haystack.lower()


class ProjectMemoryStore:
    """Persistent, incrementally updated memory of one project."""

    def __init__(self, config: MemoryConfig | None = None) -> None:
        self.config = config or MemoryConfig()
        self._lock = asyncio.Lock()
        self._root: Path | None = None
        self._doc: MemoryDocument | None = None
        self._dirty = False
        self._degraded = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._doc is not None

    @property
    def degraded(self) -> bool:
        """True while the last persistence attempt failed (memory-only mode)."""
        return self._degraded

    @property
    def directory(self) -> Path:
        return self._require_root() / self.config.directory_name

    @property
    def memory_path(self) -> Path:
        return self.directory / self.config.memory_file

    @property
    def index_path(self) -> Path:
        return self.directory / self.config.index_file

    async def initialize(self, root_path: str | os.PathLike[str]) -> Project:
        """Create or load the on-disk memory of the project at *root_path*.

        Idempotent: a second call with the same root reloads persisted state
        instead of creating a new project. Raises ``InitError`` when the
        storage directory cannot be acquired.
        """
        root = Path(root_path).expanduser().resolve()
        async with self._lock:
            if self._doc is not None and self._root == root and self._dirty:
                # Unsaved changes would be lost by a reload; keep them.
                logger.warning(
                    "initialize on dirty store root=%s; keeping in-memory state",
                    root,
                )
                return self._doc.project.model_copy()

            directory = root / self.config.directory_name
            try:
                await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            except OSError as exc:
                raise InitError(
                    f"cannot create memory directory {directory}: {exc}"
                ) from exc

            doc = await self._load(root, directory / self.config.memory_file)
            self._root = root
            self._doc = doc
            self._dirty = False
            self._degraded = False
            logger.info(
                "memory initialized project_id=%s files=%d root=%s",
                doc.project.id,
                len(doc.files),
                root,
            )
            return doc.project.model_copy()

    async def _load(self, root: Path, memory_path: Path) -> MemoryDocument:
        if not memory_path.exists():
            return _fresh_document(root)
        doc: MemoryDocument | None = None
        try:
            raw = await asyncio.to_thread(memory_path.read_text, encoding="utf-8")
        except UnicodeDecodeError:
            raw = None
        except OSError as exc:
            raise InitError(f"cannot read {memory_path}: {exc}") from exc

        if raw is not None:
            try:
                doc = MemoryDocument.model_validate_json(raw)
            except ValidationError:
                doc = None
        if doc is None:
            aside = memory_path.with_name(memory_path.name + ".corrupt")
            logger.warning(
                "corrupt memory document %s moved to %s; starting fresh",
                memory_path,
                aside,
            )
            try:
                await asyncio.to_thread(os.replace, memory_path, aside)
            except OSError as exc:
                raise InitError(f"cannot move corrupt {memory_path}: {exc}") from exc
            return _fresh_document(root)

        # Identity always follows the root the store was opened with.
        doc.project.id = project_id_for(str(root))
        doc.project.path = str(root)
        return doc

    async def flush(self) -> None:
        """Persist pending state if a previous write failed."""
        if self._doc is None or not self._dirty:
            return
        async with self._lock:
            await self._persist()

    async def close(self) -> None:
        """Flush pending writes before the project is torn down."""
        await self.flush()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def update_file(self, path: str, content: str) -> FileRecord:
        """Replace the FileRecord for *path* with facts derived from *content*."""
        doc = self._require_doc()
        relative = self.relative_path(path)
        facts = extract_facts(content)
        record = FileRecord(
            path=relative,
            content=content,
            size=len(content.encode("utf-8")),
            last_modified=time.time(),
            functions=facts.functions,
            variables=facts.variables,
            imports=facts.imports,
        )
        async with self._lock:
            doc.files[relative] = record
            await self._persist()
        return record.model_copy(deep=True)

    async def update_context(
        self, update: EditingContextUpdate | dict[str, Any]
    ) -> EditingContext:
        """Shallow-merge the explicitly provided fields into the EditingContext."""
        doc = self._require_doc()
        if isinstance(update, dict):
            update = EditingContextUpdate.model_validate(update)
        changes = update.model_dump(exclude_unset=True)
        if changes.get("current_file"):
            changes["current_file"] = self.relative_path(changes["current_file"])
        async with self._lock:
            merged = doc.context.model_dump()
            merged.update(changes)
            doc.context = EditingContext.model_validate(merged)
            await self._persist()
        return doc.context.model_copy(deep=True)

    async def add_history(self, action: str, details: Any = None) -> HistoryEntry:
        """Append a history entry, evicting the oldest beyond the cap."""
        doc = self._require_doc()
        entry = HistoryEntry(action=action, details=details)
        async with self._lock:
            doc.history.append(entry)
            excess = len(doc.history) - self.config.history_limit
            if excess > 0:
                del doc.history[:excess]
            await self._persist()
        return entry

    async def add_interaction(
        self,
        kind: InteractionType | str,
        prompt: str,
        response: str,
        metadata: dict[str, Any] | None = None,
    ) -> AIInteraction:
        """Append an AI interaction, evicting the oldest beyond the cap."""
        doc = self._require_doc()
        interaction = AIInteraction(
            type=InteractionType(kind),
            prompt=prompt,
            response=response,
            metadata=metadata or {},
        )
        async with self._lock:
            doc.interactions.append(interaction)
            excess = len(doc.interactions) - self.config.interaction_limit
            if excess > 0:
                del doc.interactions[:excess]
            await self._persist()
        return interaction

    async def clear(self) -> None:
        """Reset files, context and logs; the Project identity is kept."""
        doc = self._require_doc()
        async with self._lock:
            self._doc = MemoryDocument(project=doc.project)
            await self._persist()

    async def import_data(self, data: str | bytes | dict[str, Any]) -> None:
        """Merge-restore an exported document.

        The payload is validated before anything changes; on failure
        ``ImportValidationError`` is raised and live state is untouched.
        Imported files override same-path records, imported logs and
        context replace the current ones. Project identity stays bound to
        the current root.
        """
        doc = self._require_doc()
        try:
            if isinstance(data, dict):
                incoming = MemoryImport.model_validate(data)
            else:
                incoming = MemoryImport.model_validate_json(data)
        except ValidationError as exc:
            raise ImportValidationError(f"malformed memory import: {exc}") from exc

        async with self._lock:
            merged = doc.model_copy(deep=True)
            if incoming.files is not None:
                for key, record in incoming.files.items():
                    relative = self.relative_path(key)
                    merged.files[relative] = record.model_copy(
                        update={"path": relative}
                    )
            if incoming.context is not None:
                merged.context = incoming.context
            if incoming.history is not None:
                merged.history = incoming.history[-self.config.history_limit :]
            if incoming.interactions is not None:
                merged.interactions = incoming.interactions[
                    -self.config.interaction_limit :
                ]
            if incoming.project is not None:
                merged.project.created_at = min(
                    merged.project.created_at, incoming.project.created_at
                )
            self._doc = merged
            await self._persist()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def export(self) -> str:
        """Serialize the whole memory document as indented JSON."""
        return self._require_doc().model_dump_json(indent=2)

    def build_ai_context(self) -> AIContextSnapshot:
        """Return an immutable snapshot for prompt building."""
        doc = self._require_doc()
        current_path = doc.context.current_file
        current = doc.files.get(current_path) if current_path else None
        history = doc.history[-self.config.recent_history :]
        interactions = doc.interactions[-self.config.recent_interactions :]
        return AIContextSnapshot(
            project_name=doc.project.name,
            context=doc.context.model_copy(deep=True),
            current_file=current.model_copy(deep=True) if current else None,
            recent_history=[e.model_copy(deep=True) for e in history],
            recent_interactions=[i.model_copy(deep=True) for i in interactions],
            index={path: record.facts() for path, record in doc.files.items()},
        )

    def search(
        self,
        query: str,
        scope: SearchScope | str = SearchScope.all,
        *,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """Case-insensitive substring scan over files, symbols and logs."""
        doc = self._require_doc()
        needle = query.strip().lower()
        if not needle:
            return []
        scope = SearchScope(scope)
        everything = scope is SearchScope.all
        results: list[SearchResult] = []

        if everything or scope is SearchScope.files:
            for path in sorted(doc.files):
                for line_no, line in enumerate(
                    doc.files[path].content.splitlines(), start=1
                ):
                    if _contains(line, needle):
                        results.append(
                            SearchResult(
                                kind="file",
                                path=path,
                                line=line_no,
                                snippet=line.strip()[:_SNIPPET_CHARS],
                            )
                        )

        if everything or scope is SearchScope.symbols:
            for path in sorted(doc.files):
                record = doc.files[path]
                for fn in record.functions:
                    if _contains(fn.name, needle):
                        results.append(
                            SearchResult(
                                kind="function",
                                path=path,
                                line=fn.line,
                                snippet=f"{fn.return_type} {fn.name}()",
                            )
                        )
                for var in record.variables:
                    if _contains(var.name, needle):
                        results.append(
                            SearchResult(
                                kind="variable",
                                path=path,
                                line=var.line,
                                snippet=f"{var.type} {var.name}",
                            )
                        )

        if everything or scope is SearchScope.history:
            for position, entry in enumerate(doc.history):
                text = f"{entry.action} {entry.details if entry.details is not None else ''}"
                if _contains(text, needle):
                    results.append(
                        SearchResult(
                            kind="history",
                            index=position,
                            snippet=text.strip()[:_SNIPPET_CHARS],
                        )
                    )

        if everything or scope is SearchScope.interactions:
            for position, interaction in enumerate(doc.interactions):
                if _contains(interaction.prompt, needle) or _contains(
                    interaction.response, needle
                ):
                    results.append(
                        SearchResult(
                            kind="interaction",
                            index=position,
                            snippet=interaction.prompt[:_SNIPPET_CHARS],
                        )
                    )

        if limit is not None:
            return results[:limit]
        return results

    def recent_history(self, limit: int = 10) -> list[HistoryEntry]:
        """Newest-first slice of the history log."""
        doc = self._require_doc()
        if limit <= 0:
            return []
        return [e.model_copy(deep=True) for e in reversed(doc.history[-limit:])]

    def recent_interactions(self, limit: int = 10) -> list[AIInteraction]:
        """Newest-first slice of the interaction log."""
        doc = self._require_doc()
        if limit <= 0:
            return []
        return [i.model_copy(deep=True) for i in reversed(doc.interactions[-limit:])]

    def file_info(self, path: str) -> FileRecord | None:
        record = self._require_doc().files.get(self.relative_path(path))
        return record.model_copy(deep=True) if record else None

    def project_info(self) -> Project:
        return self._require_doc().project.model_copy()

    def stats(self) -> MemoryStats:
        if self._doc is None:
            return MemoryStats(initialized=False)
        doc = self._doc
        return MemoryStats(
            initialized=True,
            project_id=doc.project.id,
            project_name=doc.project.name,
            files_count=len(doc.files),
            history_count=len(doc.history),
            interactions_count=len(doc.interactions),
            last_modified=doc.project.last_modified,
            degraded=self._degraded,
        )

    def relative_path(self, path: str) -> str:
        """Express *path* relative to the project root with POSIX separators."""
        root = self._require_root()
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(root)
            except ValueError:
                return candidate.as_posix()
        return candidate.as_posix()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_root(self) -> Path:
        if self._root is None:
            raise RuntimeError("Memory store not initialized. Call initialize() first.")
        return self._root

    def _require_doc(self) -> MemoryDocument:
        if self._doc is None:
            raise RuntimeError("Memory store not initialized. Call initialize() first.")
        return self._doc

    async def _persist(self) -> None:
        """Write both documents. Caller must hold ``self._lock``."""
        doc = self._require_doc()
        self._dirty = True
        saved_at = time.time()
        snapshot = doc.model_copy(deep=True)
        snapshot.project.last_modified = saved_at
        index = IndexDocument(
            project_id=snapshot.project.id,
            files={path: record.facts() for path, record in snapshot.files.items()},
        )
        memory_text = snapshot.model_dump_json(indent=2)
        index_text = index.model_dump_json(indent=2)

        start = perf_counter()
        ok = False
        try:
            await asyncio.to_thread(self._write_atomic, self.memory_path, memory_text)
            await asyncio.to_thread(self._write_atomic, self.index_path, index_text)
            ok = True
        except OSError as exc:
            if not self._degraded:
                logger.warning(
                    "memory persistence failed, continuing memory-only: %s", exc
                )
            self._degraded = True
            raise MemoryIOError(f"cannot persist project memory: {exc}") from exc
        finally:
            record_latency(
                operation="memory.persist",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        doc.project.last_modified = saved_at
        self._dirty = False
        if self._degraded:
            logger.info("memory persistence recovered path=%s", self.memory_path)
        self._degraded = False

    @staticmethod
    def _write_atomic(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
