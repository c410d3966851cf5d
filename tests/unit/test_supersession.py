"""Unit tests for cooperative cancellation of outdated requests."""

from __future__ import annotations

import asyncio

import pytest

from contextpilot.engine.supersession import RequestSupersession
from contextpilot.errors import RequestSuperseded


class TestRequestSupersession:
    async def test_newer_request_supersedes_older(self):
        supersession = RequestSupersession()
        gate = asyncio.Event()

        async def _slow():
            await gate.wait()
            return "old"

        async def _fast():
            return "new"

        older = asyncio.create_task(supersession.run("completion", _slow))
        await asyncio.sleep(0)
        assert supersession.in_flight("completion")

        assert await supersession.run("completion", _fast) == "new"
        with pytest.raises(RequestSuperseded):
            await older

    async def test_different_keys_run_independently(self):
        supersession = RequestSupersession()
        gate = asyncio.Event()

        async def _wait(value):
            await gate.wait()
            return value

        first = asyncio.create_task(supersession.run("completion", lambda: _wait("c")))
        second = asyncio.create_task(supersession.run("refactor", lambda: _wait("r")))
        await asyncio.sleep(0)
        gate.set()

        assert await first == "c"
        assert await second == "r"

    async def test_errors_propagate(self):
        supersession = RequestSupersession()

        async def _boom():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await supersession.run("diagnosis", _boom)
        assert not supersession.in_flight("diagnosis")

    async def test_cancel_all_supersedes_waiters(self):
        supersession = RequestSupersession()

        async def _forever():
            await asyncio.sleep(3600)

        waiter = asyncio.create_task(supersession.run("generation", _forever))
        await asyncio.sleep(0)

        await supersession.cancel_all()

        with pytest.raises(RequestSuperseded):
            await waiter
