"""Unit test fixtures: temporary project stores and the FastMCP client."""

from __future__ import annotations

import pytest
from fastmcp import Client

from contextpilot.memory.store import ProjectMemoryStore
from contextpilot.providers.local import LocalAdapter


@pytest.fixture()
async def store(tmp_path):
    """Yield a memory store initialized on an empty project directory."""
    memory = ProjectMemoryStore()
    await memory.initialize(tmp_path)
    yield memory
    await memory.close()


@pytest.fixture()
async def mcp_client(tmp_path):
    """Yield a FastMCP Client wired to a local-only ContextPilot server."""
    from contextpilot.server import configure
    from contextpilot.server import mcp
    from contextpilot.server import shutdown

    await configure(adapters=[LocalAdapter()])

    async with Client(mcp) as client:
        yield client

    await shutdown()
