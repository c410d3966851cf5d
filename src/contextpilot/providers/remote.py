"""Remote HTTP provider adapters.

Each adapter performs a blocking ``urllib`` request on a worker thread
(``asyncio.to_thread``) with the request timeout applied at the socket
level, and maps transport, HTTP and payload failures onto
``ProviderErrorKind``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from contextpilot.errors import ProviderError
from contextpilot.errors import ProviderErrorKind
from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import ProviderResponse
from contextpilot.providers.base import suggestions_from_text

logger = logging.getLogger(__name__)


def error_kind_for_status(status: int) -> ProviderErrorKind:
    """Map an HTTP status code onto the provider error taxonomy."""
    if status in (401, 403):
        return ProviderErrorKind.unauthorized
    if status == 429:
        return ProviderErrorKind.rate_limited
    if status in (408, 504):
        return ProviderErrorKind.timeout
    if status in (500, 502, 503):
        return ProviderErrorKind.unreachable
    return ProviderErrorKind.unknown


class HTTPJSONAdapter:
    """Shared JSON-over-HTTP plumbing for remote adapters."""

    name = "http"

    def _post_json_sync(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        request = Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", **headers},
            method="POST",
        )
        try:
            with urlopen(request, timeout=timeout_seconds) as response:
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise ProviderError(
                error_kind_for_status(exc.code),
                f"provider HTTP {exc.code}: {detail[:200]}",
                provider=self.name,
                status_code=exc.code,
            ) from exc
        except URLError as exc:
            kind = (
                ProviderErrorKind.timeout
                if isinstance(exc.reason, TimeoutError)
                else ProviderErrorKind.unreachable
            )
            raise ProviderError(
                kind, f"provider network error: {exc.reason}", provider=self.name
            ) from exc
        except TimeoutError as exc:
            raise ProviderError(
                ProviderErrorKind.timeout,
                f"provider timed out after {timeout_seconds}s",
                provider=self.name,
            ) from exc
        except OSError as exc:
            raise ProviderError(
                ProviderErrorKind.unreachable,
                f"provider IO error: {exc}",
                provider=self.name,
            ) from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "provider returned a body that is not UTF-8",
                provider=self.name,
            ) from exc
        except ValueError as exc:
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "provider returned invalid JSON",
                provider=self.name,
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "provider returned a non-object JSON payload",
                provider=self.name,
            )
        return data

    def _response(
        self,
        prompt: PromptPayload,
        text: str,
        data: dict[str, Any],
        model: str,
    ) -> ProviderResponse:
        suggestions = (
            suggestions_from_text(text) if prompt.action is PromptAction.completion else []
        )
        return ProviderResponse(
            text=text,
            suggestions=suggestions,
            provider=self.name,
            model=model,
            raw=data,
        )


class OpenAICompatibleAdapter(HTTPJSONAdapter):
    """Adapter for ``/chat/completions`` style APIs."""

    default_base_url = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"

    def __init__(
        self,
        *,
        name: str,
        api_key: str | None,
        model: str | None = None,
        base_url: str | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.name = name
        self._api_key = api_key
        self._model = model or self.default_model
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self._extra_headers = dict(extra_headers or {})

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: PromptPayload,
        options: CompletionOptions,
    ) -> ProviderResponse:
        if not self._api_key:
            raise ProviderError(
                ProviderErrorKind.unauthorized,
                "no API key configured",
                provider=self.name,
            )
        payload = {
            "model": self._model,
            "messages": prompt.messages(),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self._api_key}", **self._extra_headers}
        data = await asyncio.to_thread(
            self._post_json_sync,
            f"{self._base_url}/chat/completions",
            payload,
            headers,
            options.timeout_seconds,
        )
        return self._response(prompt, self._extract_content(data), data, self._model)

    def _extract_content(self, data: dict[str, Any]) -> str:
        error = data.get("error")
        if error:
            # Some gateways report upstream failures inside a 200 body.
            status = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            kind = (
                error_kind_for_status(status)
                if isinstance(status, int)
                else ProviderErrorKind.unknown
            )
            raise ProviderError(
                kind,
                f"provider error: {message}",
                provider=self.name,
                status_code=status if isinstance(status, int) else None,
            )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "provider response missing choices[0].message.content",
                provider=self.name,
            ) from exc
        if not isinstance(content, str):
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "provider response content must be a string",
                provider=self.name,
            )
        return content


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter gateway, defaulting to a Qwen coder model."""

    default_base_url = "https://openrouter.ai/api/v1"
    default_model = "qwen/qwen-2.5-coder-32b-instruct"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str | None = None,
        base_url: str | None = None,
        name: str = "openrouter",
    ) -> None:
        super().__init__(
            name=name,
            api_key=api_key,
            model=model,
            base_url=base_url,
            extra_headers={
                "HTTP-Referer": "https://github.com/contextpilot/contextpilot",
                "X-Title": "contextpilot",
            },
        )


class TogetherAdapter(OpenAICompatibleAdapter):
    """Together AI chat-completions endpoint."""

    default_base_url = "https://api.together.xyz/v1"
    default_model = "mistralai/Mistral-7B-Instruct-v0.2"

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str | None = None,
        base_url: str | None = None,
        name: str = "together",
    ) -> None:
        super().__init__(name=name, api_key=api_key, model=model, base_url=base_url)


class OllamaAdapter(HTTPJSONAdapter):
    """Self-hosted Ollama server using ``/api/generate`` (no auth)."""

    default_model = "codellama"

    def __init__(
        self,
        *,
        model: str | None = None,
        base_url: str | None = None,
        name: str = "ollama",
    ) -> None:
        self.name = name
        self._model = model or self.default_model
        host = base_url or os.getenv("OLLAMA_HOST", "http://localhost:11434")
        host = host.rstrip("/")
        # Ollama's native endpoints do not live under the OpenAI-style /v1
        if host.endswith("/v1"):
            host = host[:-3]
        self._base_url = host

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: PromptPayload,
        options: CompletionOptions,
    ) -> ProviderResponse:
        payload = {
            "model": self._model,
            "prompt": prompt.flat_prompt(),
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }
        data = await asyncio.to_thread(
            self._post_json_sync,
            f"{self._base_url}/api/generate",
            payload,
            {},
            options.timeout_seconds,
        )
        if "error" in data:
            raise ProviderError(
                ProviderErrorKind.unknown,
                f"ollama error: {data['error']}",
                provider=self.name,
            )
        text = data.get("response")
        if not isinstance(text, str):
            raise ProviderError(
                ProviderErrorKind.malformed_response,
                "ollama response missing 'response' text",
                provider=self.name,
            )
        return self._response(prompt, text, data, self._model)
