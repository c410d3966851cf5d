"""Integration tests for memory persistence under concurrency and disk failures."""

from __future__ import annotations

import asyncio
import json

import pytest

from contextpilot.config import MemoryConfig
from contextpilot.engine.dispatcher import FallbackDispatcher
from contextpilot.errors import MemoryIOError
from contextpilot.memory.store import ProjectMemoryStore
from contextpilot.orchestrator import OrchestrationContext
from contextpilot.providers.local import LocalAdapter


def _failing_write(path, text):
    raise OSError("read-only file system")


async def _reopen(root, config: MemoryConfig | None = None) -> ProjectMemoryStore:
    store = ProjectMemoryStore(config)
    await store.initialize(root)
    return store


class TestConcurrentWrites:
    async def test_parallel_updates_all_land_on_disk(self, tmp_path):
        store = await _reopen(tmp_path)

        await asyncio.gather(
            *(
                store.update_file(f"src/file_{i}.c", f"int value_{i} = {i};\n")
                for i in range(20)
            ),
            *(store.add_history("file_update", {"n": i}) for i in range(20)),
        )
        await store.close()

        reloaded = await _reopen(tmp_path)
        stats = reloaded.stats()
        assert (stats.files_count, stats.history_count) == (20, 20)

        index = json.loads(reloaded.index_path.read_text(encoding="utf-8"))
        assert index["files"]["src/file_7.c"]["variables"][0]["name"] == "value_7"

    async def test_history_cap_holds_across_reload(self, tmp_path):
        config = MemoryConfig(history_limit=50)
        store = await _reopen(tmp_path, config)
        for i in range(120):
            await store.add_history("compilation", {"n": i})
        await store.close()

        reloaded = await _reopen(tmp_path, config)
        newest = reloaded.recent_history(50)
        assert len(newest) == 50
        assert newest[0].details == {"n": 119}
        assert newest[-1].details == {"n": 70}


class TestDiskFailures:
    async def test_writes_survive_a_failed_disk_until_close(self, tmp_path, monkeypatch):
        ctx = OrchestrationContext(FallbackDispatcher.from_adapters([LocalAdapter()]))
        await ctx.initialize_project(str(tmp_path))

        monkeypatch.setattr(ProjectMemoryStore, "_write_atomic", staticmethod(_failing_write))
        degraded = await ctx.open_file("main.c", "int main(void) { return 0; }\n")
        assert degraded.status == "degraded"

        # Memory-only state still feeds actions.
        review = await ctx.request_review("int main(void) { return 0; }\n")
        assert review.status == "ok"

        monkeypatch.undo()
        assert (await ctx.close()).status == "ok"

        reloaded = await _reopen(tmp_path)
        assert reloaded.file_info("main.c") is not None
        assert reloaded.stats().interactions_count == 1
        assert reloaded.build_ai_context().context.current_file == "main.c"

    async def test_corrupt_document_is_set_aside(self, tmp_path):
        store = await _reopen(tmp_path)
        await store.update_file("main.c", "int x;\n")
        await store.close()
        store.memory_path.write_text("{ truncated", encoding="utf-8")

        reloaded = await _reopen(tmp_path)

        assert reloaded.stats().files_count == 0
        assert (reloaded.directory / "memory.json.corrupt").read_text() == "{ truncated"

    async def test_undecodable_document_is_set_aside(self, tmp_path):
        directory = tmp_path / ".contextpilot"
        directory.mkdir()
        (directory / "memory.json").write_bytes(b"\xff\xfe{garbage")
        ctx = OrchestrationContext(FallbackDispatcher.from_adapters([LocalAdapter()]))

        result = await ctx.initialize_project(str(tmp_path))

        assert result.status == "ok"
        assert (directory / "memory.json.corrupt").read_bytes() == b"\xff\xfe{garbage"
        assert ctx.store.stats().files_count == 0
        await ctx.close()

    async def test_reinitialize_keeps_unsaved_changes(self, tmp_path, monkeypatch):
        store = await _reopen(tmp_path)
        monkeypatch.setattr(ProjectMemoryStore, "_write_atomic", staticmethod(_failing_write))
        with pytest.raises(MemoryIOError):
            await store.add_history("execution", {"success": True})
        monkeypatch.undo()

        await store.initialize(tmp_path)

        assert store.stats().history_count == 1
        await store.close()
        assert (await _reopen(tmp_path)).stats().history_count == 1
