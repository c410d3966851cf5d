"""Test doubles shared by unit and integration suites."""

from __future__ import annotations

import asyncio

from contextpilot.errors import ProviderError
from contextpilot.errors import ProviderErrorKind
from contextpilot.host import CompileResult
from contextpilot.host import RunResult
from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import ProviderResponse


class ScriptedAdapter:
    """Provider double that fails, stalls or answers as instructed.

    ``behavior`` is either a ``ProviderErrorKind`` (raise it), the string
    ``"hang"`` (never answer), or response text.
    """

    def __init__(self, name: str, behavior: ProviderErrorKind | str = "ok") -> None:
        self.name = name
        self.behavior = behavior
        self.calls: list[PromptPayload] = []

    async def complete(
        self, prompt: PromptPayload, options: CompletionOptions
    ) -> ProviderResponse:
        self.calls.append(prompt)
        if isinstance(self.behavior, ProviderErrorKind):
            raise ProviderError(self.behavior, f"{self.name} failed", provider=self.name)
        if self.behavior == "hang":
            await asyncio.sleep(3600)
        return ProviderResponse(text=self.behavior, provider=self.name, model="fake")


class GatedAdapter:
    """Answers only once ``release`` is set; counts started calls."""

    def __init__(self, name: str = "gated", text: str = "done") -> None:
        self.name = name
        self.text = text
        self.release = asyncio.Event()
        self.started = 0

    async def complete(
        self, prompt: PromptPayload, options: CompletionOptions
    ) -> ProviderResponse:
        self.started += 1
        await self.release.wait()
        return ProviderResponse(text=self.text, provider=self.name)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCompiler:
    """``CompilerRunner`` returning canned results."""

    def __init__(self, compile_result: CompileResult, run_result: RunResult | None = None):
        self.compile_result = compile_result
        self.run_result = run_result or RunResult(success=True, output="")
        self.compiled: list[str] = []

    async def compile(self, source: str) -> CompileResult:
        self.compiled.append(source)
        return self.compile_result

    async def run(self, source: str) -> RunResult:
        return self.run_result
