"""Unit tests for the remote HTTP adapters (no network)."""

from __future__ import annotations

import io

import pytest
from urllib.error import HTTPError
from urllib.error import URLError

from contextpilot.errors import ProviderError
from contextpilot.errors import ProviderErrorKind
from contextpilot.providers.base import CompletionOptions
from contextpilot.providers.base import PromptAction
from contextpilot.providers.base import PromptPayload
from contextpilot.providers.base import suggestions_from_text
from contextpilot.providers.remote import error_kind_for_status
from contextpilot.providers.remote import HTTPJSONAdapter
from contextpilot.providers.remote import OllamaAdapter
from contextpilot.providers.remote import OpenAICompatibleAdapter
from contextpilot.providers.remote import OpenRouterAdapter
from contextpilot.providers.remote import TogetherAdapter


def _make_prompt(action: PromptAction = PromptAction.refactor) -> PromptPayload:
    return PromptPayload(action=action, system="sys", user="usr", subject="int x;")


def _chat_reply(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


class _FakeHTTPResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def read(self) -> bytes:
        return self._body


class _Capture:
    """Stands in for ``_post_json_sync`` and records its arguments."""

    def __init__(self, reply: dict) -> None:
        self.reply = reply
        self.calls: list[tuple[str, dict, dict, float]] = []

    def __call__(self, url, payload, headers, timeout_seconds):
        self.calls.append((url, payload, headers, timeout_seconds))
        return self.reply


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ProviderErrorKind.unauthorized),
            (403, ProviderErrorKind.unauthorized),
            (429, ProviderErrorKind.rate_limited),
            (504, ProviderErrorKind.timeout),
            (502, ProviderErrorKind.unreachable),
            (418, ProviderErrorKind.unknown),
        ],
    )
    def test_error_kind_for_status(self, status, kind):
        assert error_kind_for_status(status) is kind


class TestPostJson:
    def _post(self, monkeypatch, behavior):
        def _fake_urlopen(request, timeout):
            if isinstance(behavior, Exception):
                raise behavior
            return _FakeHTTPResponse(behavior)

        monkeypatch.setattr("contextpilot.providers.remote.urlopen", _fake_urlopen)
        adapter = HTTPJSONAdapter()
        return adapter._post_json_sync("http://example.test", {"a": 1}, {}, 1.0)

    def test_decodes_object(self, monkeypatch):
        assert self._post(monkeypatch, b'{"ok": true}') == {"ok": True}

    def test_http_error_mapped(self, monkeypatch):
        error = HTTPError("http://example.test", 429, "Too Many", {}, io.BytesIO(b"slow"))
        with pytest.raises(ProviderError) as excinfo:
            self._post(monkeypatch, error)
        assert excinfo.value.kind is ProviderErrorKind.rate_limited
        assert excinfo.value.status_code == 429

    def test_socket_timeout(self, monkeypatch):
        with pytest.raises(ProviderError) as excinfo:
            self._post(monkeypatch, URLError(TimeoutError("timed out")))
        assert excinfo.value.kind is ProviderErrorKind.timeout

    def test_connection_refused(self, monkeypatch):
        with pytest.raises(ProviderError) as excinfo:
            self._post(monkeypatch, URLError("connection refused"))
        assert excinfo.value.kind is ProviderErrorKind.unreachable

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"\xff\xfe{}"])
    def test_malformed_payload(self, monkeypatch, body):
        with pytest.raises(ProviderError) as excinfo:
            self._post(monkeypatch, body)
        assert excinfo.value.kind is ProviderErrorKind.malformed_response


class TestOpenAICompatible:
    async def test_missing_key_is_unauthorized(self):
        adapter = OpenAICompatibleAdapter(name="openai", api_key=None)
        with pytest.raises(ProviderError) as excinfo:
            await adapter.complete(_make_prompt(), CompletionOptions())
        assert excinfo.value.kind is ProviderErrorKind.unauthorized

    async def test_request_shape(self, monkeypatch):
        adapter = TogetherAdapter(api_key="secret")
        capture = _Capture(_chat_reply("done"))
        monkeypatch.setattr(adapter, "_post_json_sync", capture)

        response = await adapter.complete(
            _make_prompt(), CompletionOptions(max_tokens=99, temperature=0.3, timeout_seconds=7)
        )

        url, payload, headers, timeout = capture.calls[0]
        assert url == "https://api.together.xyz/v1/chat/completions"
        assert payload["model"] == TogetherAdapter.default_model
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert (payload["max_tokens"], payload["temperature"]) == (99, 0.3)
        assert headers == {"Authorization": "Bearer secret"}
        assert timeout == 7
        assert response.text == "done"
        assert response.provider == "together"
        assert response.suggestions == []

    async def test_openrouter_headers(self, monkeypatch):
        adapter = OpenRouterAdapter(api_key="k")
        capture = _Capture(_chat_reply("x"))
        monkeypatch.setattr(adapter, "_post_json_sync", capture)

        await adapter.complete(_make_prompt(), CompletionOptions())

        headers = capture.calls[0][2]
        assert headers["Authorization"] == "Bearer k"
        assert headers["X-Title"] == "contextpilot"
        assert "HTTP-Referer" in headers

    async def test_completion_text_becomes_suggestions(self, monkeypatch):
        adapter = OpenRouterAdapter(api_key="k")
        monkeypatch.setattr(
            adapter, "_post_json_sync", _Capture(_chat_reply("add(1, 2);\nsub(3, 4);"))
        )

        response = await adapter.complete(
            _make_prompt(PromptAction.completion), CompletionOptions()
        )

        assert [(s.label, s.confidence) for s in response.suggestions] == [
            ("add(1, 2)", 0.9),
            ("sub(3, 4)", 0.8),
        ]

    async def test_error_inside_success_body(self, monkeypatch):
        adapter = OpenRouterAdapter(api_key="k")
        monkeypatch.setattr(
            adapter,
            "_post_json_sync",
            _Capture({"error": {"code": 429, "message": "slow down"}}),
        )
        with pytest.raises(ProviderError) as excinfo:
            await adapter.complete(_make_prompt(), CompletionOptions())
        assert excinfo.value.kind is ProviderErrorKind.rate_limited

    async def test_missing_choices_is_malformed(self, monkeypatch):
        adapter = OpenRouterAdapter(api_key="k")
        monkeypatch.setattr(adapter, "_post_json_sync", _Capture({"choices": []}))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.complete(_make_prompt(), CompletionOptions())
        assert excinfo.value.kind is ProviderErrorKind.malformed_response


class TestOllama:
    async def test_v1_suffix_is_stripped(self, monkeypatch):
        adapter = OllamaAdapter(base_url="http://host:11434/v1/", model="llama3")
        capture = _Capture({"response": "hello"})
        monkeypatch.setattr(adapter, "_post_json_sync", capture)

        response = await adapter.complete(_make_prompt(), CompletionOptions(max_tokens=12))

        url, payload, headers, _ = capture.calls[0]
        assert url == "http://host:11434/api/generate"
        assert payload["prompt"] == "sys\n\nusr"
        assert payload["stream"] is False
        assert payload["options"]["num_predict"] == 12
        assert headers == {}
        assert response.text == "hello"
        assert response.model == "llama3"

    def test_host_from_environment(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434")
        assert OllamaAdapter()._base_url == "http://gpu-box:11434"

    async def test_error_payload(self, monkeypatch):
        adapter = OllamaAdapter(base_url="http://h")
        monkeypatch.setattr(adapter, "_post_json_sync", _Capture({"error": "model not found"}))
        with pytest.raises(ProviderError) as excinfo:
            await adapter.complete(_make_prompt(), CompletionOptions())
        assert excinfo.value.kind is ProviderErrorKind.unknown


class TestSuggestionsFromText:
    def test_fences_and_blanks_skipped(self):
        text = "```c\n\nint total = add(a, b);\n```"
        suggestions = suggestions_from_text(text)
        assert [s.label for s in suggestions] == ["int total = add(a, b)"]

    def test_limit(self):
        text = "\n".join(f"call_{i}();" for i in range(10))
        assert len(suggestions_from_text(text, limit=3)) == 3
