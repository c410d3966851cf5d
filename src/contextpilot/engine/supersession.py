"""Cooperative cancellation of outdated requests.

At most one request per action key is in flight. Starting a new one
cancels the previous task; if the previous result still arrives it is
discarded and its caller gets ``RequestSuperseded``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import TypeVar

from contextpilot.errors import RequestSuperseded

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestSupersession:
    """Per-key generation counter plus the task currently in flight."""

    def __init__(self) -> None:
        self._generations: dict[str, int] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        previous = self._tasks.get(key)
        if previous is not None and not previous.done():
            logger.debug("superseding in-flight request key=%s", key)
            previous.cancel()

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._generations.get(key) != generation:
                raise RequestSuperseded(key) from None
            raise
        finally:
            if self._tasks.get(key) is task:
                del self._tasks[key]

        if self._generations.get(key) != generation:
            raise RequestSuperseded(key)
        return result

    async def cancel_all(self) -> None:
        """Cancel everything in flight; waiting callers get ``RequestSuperseded``."""
        tasks = []
        for key, task in self._tasks.items():
            if task.done():
                continue
            self._generations[key] = self._generations.get(key, 0) + 1
            task.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
