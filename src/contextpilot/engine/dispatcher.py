"""Sequential provider fallback.

Per request: ``Pending -> TryingProvider(i) -> Success | TryingProvider(i+1)
| ExhaustedFailure``. Providers are tried one at a time in chain order, each
under its own timeout; the first success is returned immediately. Provider
failures never reach the caller unless the whole chain fails.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from time import perf_counter

from contextpilot.config import ProviderConfig
from contextpilot.engine.schemas import DispatchResult
from contextpilot.errors import ExhaustedFailure
from contextpilot.errors import ProviderError
from contextpilot.errors import ProviderErrorKind
from contextpilot.models.schemas import AttemptRecord
from contextpilot.observability import record_latency
from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class FallbackDispatcher:
    """Try a fixed chain of providers until one answers."""

    def __init__(self, chain: Sequence[tuple[ProviderAdapter, ProviderConfig]]) -> None:
        if not chain:
            raise ValueError("provider chain must not be empty")
        self._chain = list(chain)

    @classmethod
    def from_adapters(
        cls,
        adapters: Sequence[ProviderAdapter],
        *,
        timeout_seconds: float = 30.0,
    ) -> FallbackDispatcher:
        """Chain pre-built adapters with one shared timeout."""
        return cls(
            [
                (
                    adapter,
                    ProviderConfig(name=adapter.name, timeout_seconds=timeout_seconds),
                )
                for adapter in adapters
            ]
        )

    @property
    def provider_names(self) -> list[str]:
        return [adapter.name for adapter, _ in self._chain]

    async def dispatch(
        self,
        prompt: PromptPayload,
        options: CompletionOptions | None = None,
    ) -> DispatchResult:
        """Return the first successful response in chain order.

        *options* overrides the per-provider settings from
        ``ProviderConfig`` when given. Raises ``ExhaustedFailure`` carrying
        every attempt when no provider succeeds.
        """
        attempts: list[AttemptRecord] = []
        for adapter, config in self._chain:
            opts = options or CompletionOptions(
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout_seconds=config.timeout_seconds,
            )
            start = perf_counter()
            kind: ProviderErrorKind | None = None
            detail = ""
            try:
                response = await asyncio.wait_for(
                    adapter.complete(prompt, opts),
                    timeout=opts.timeout_seconds,
                )
            except asyncio.TimeoutError:
                kind = ProviderErrorKind.timeout
                detail = f"no answer within {opts.timeout_seconds}s"
            except ProviderError as exc:
                kind = exc.kind
                detail = str(exc)
            except Exception as exc:
                logger.exception("provider %s raised unexpectedly", adapter.name)
                kind = ProviderErrorKind.unknown
                detail = f"{type(exc).__name__}: {exc}"

            duration_ms = (perf_counter() - start) * 1000
            record_latency(
                operation=f"dispatch.{adapter.name}",
                duration_ms=duration_ms,
                ok=kind is None,
            )
            attempts.append(
                AttemptRecord(
                    provider=adapter.name,
                    error_kind=kind,
                    message=detail,
                    duration_ms=round(duration_ms, 3),
                )
            )

            if kind is None:
                if not response.provider:
                    response = response.model_copy(update={"provider": adapter.name})
                logger.info(
                    "dispatch action=%s provider=%s attempts=%d duration_ms=%.1f",
                    prompt.action.value,
                    adapter.name,
                    len(attempts),
                    duration_ms,
                )
                return DispatchResult(
                    response=response,
                    provider=adapter.name,
                    attempts=attempts,
                )

            logger.warning(
                "provider failed action=%s provider=%s kind=%s detail=%s",
                prompt.action.value,
                adapter.name,
                kind.value,
                detail,
            )

        raise ExhaustedFailure(attempts)
