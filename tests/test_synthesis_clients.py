from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import chronicle_keeper.services.openrouter_client as openrouter_mod  # noqa: E402
from chronicle_keeper.config import Settings  # noqa: E402
from chronicle_keeper.errors import UpstreamFailure  # noqa: E402
from chronicle_keeper.services import OllamaChatClient, OpenRouterClient, build_synthesis_client  # noqa: E402


def _openrouter(**overrides: Any) -> OpenRouterClient:
    options: dict[str, Any] = {
        "api_key": "sk-test",
        "model": "gryphe/mythomax-l2-13b",
        "timeout_seconds": 30,
        "temperature": 0.7,
        "max_output_tokens": 0,
    }
    options.update(overrides)
    return OpenRouterClient(**options)


def test_openrouter_chat_builds_completion_payload() -> None:
    client = _openrouter(max_output_tokens=512)
    captured: dict[str, Any] = {}

    async def fake_request(payload):  # type: ignore[no-untyped-def]
        captured["payload"] = payload
        return {"choices": [{"message": {"content": "{\"summary\": \"ok\"}"}, "finish_reason": "stop"}]}

    client._request = fake_request  # type: ignore[method-assign]

    text = asyncio.run(
        client.chat(
            [
                {"role": "system", "content": "Return JSON only"},
                {"role": "tool", "content": "treated as user"},
                {"role": "user", "content": "   "},
            ],
            temperature=0.2,
        )
    )

    assert text == "{\"summary\": \"ok\"}"
    payload = captured["payload"]
    assert payload["model"] == "gryphe/mythomax-l2-13b"
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 512
    assert payload["messages"] == [
        {"role": "system", "content": "Return JSON only"},
        {"role": "user", "content": "treated as user"},
    ]
    assert client._endpoint() == "https://openrouter.ai/api/v1/chat/completions"


def test_openrouter_omits_token_cap_when_disabled() -> None:
    client = _openrouter()
    captured: dict[str, Any] = {}

    async def fake_request(payload):  # type: ignore[no-untyped-def]
        captured["payload"] = payload
        return {"choices": [{"message": {"content": "hello"}}]}

    client._request = fake_request  # type: ignore[method-assign]
    asyncio.run(client.chat([{"role": "user", "content": "hi"}]))

    assert "max_tokens" not in captured["payload"]
    assert captured["payload"]["temperature"] == 0.7


def test_openrouter_error_body_raises_upstream_failure() -> None:
    client = _openrouter()

    async def fake_request(payload):  # type: ignore[no-untyped-def]
        return {"error": {"message": "No endpoints found"}}

    client._request = fake_request  # type: ignore[method-assign]
    with pytest.raises(UpstreamFailure, match="No endpoints found"):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self._responses = list(responses)
        self.posts: list[str] = []
        self.closed = False

    def post(self, url: str, json: Any = None) -> _FakeResponse:
        self.posts.append(url)
        return self._responses.pop(0)


def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _sleep(delay: float) -> None:
        return None

    monkeypatch.setattr(openrouter_mod.asyncio, "sleep", _sleep)


def test_openrouter_retries_retriable_statuses(monkeypatch: pytest.MonkeyPatch) -> None:
    _no_sleep(monkeypatch)
    client = _openrouter(retries=3)
    session = _FakeSession(
        [
            _FakeResponse(429, "slow down"),
            _FakeResponse(503, "busy"),
            _FakeResponse(200, "{\"choices\": [{\"message\": {\"content\": \"done\"}}]}"),
        ]
    )
    client._session = session  # type: ignore[assignment]

    assert asyncio.run(client.chat([{"role": "user", "content": "hi"}])) == "done"
    assert len(session.posts) == 3


def test_openrouter_does_not_retry_client_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _no_sleep(monkeypatch)
    client = _openrouter(retries=3)
    session = _FakeSession([_FakeResponse(401, "unauthorized"), _FakeResponse(200, "{}")])
    client._session = session  # type: ignore[assignment]

    with pytest.raises(UpstreamFailure, match="401"):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))
    assert len(session.posts) == 1


def test_openrouter_gives_up_after_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    _no_sleep(monkeypatch)
    client = _openrouter(retries=2)
    session = _FakeSession([_FakeResponse(500, "oops"), _FakeResponse(502, "bad gateway")])
    client._session = session  # type: ignore[assignment]

    with pytest.raises(UpstreamFailure, match="after retries"):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))
    assert len(session.posts) == 2


def test_ollama_chat_builds_payload_and_strips_reasoning() -> None:
    client = OllamaChatClient(
        base_url="http://127.0.0.1:11434/",
        model="qwen2.5:7b-instruct",
        timeout_seconds=30,
        temperature=0.4,
        max_output_tokens=300,
    )
    captured: dict[str, Any] = {}

    async def fake_request(payload):  # type: ignore[no-untyped-def]
        captured["payload"] = payload
        return {"message": {"content": "<think>planning</think>\nDear diary, today was long."}}

    client._request = fake_request  # type: ignore[method-assign]

    text = asyncio.run(client.chat([{"role": "user", "content": "Write the entry"}]))

    assert text == "Dear diary, today was long."
    payload = captured["payload"]
    assert payload["model"] == "qwen2.5:7b-instruct"
    assert payload["stream"] is False
    assert payload["options"]["temperature"] == 0.4
    assert payload["options"]["num_predict"] == 300
    assert client._endpoint() == "http://127.0.0.1:11434/api/chat"


def test_ollama_empty_content_raises_upstream_failure() -> None:
    client = OllamaChatClient(base_url="http://127.0.0.1:11434", model="llama3")

    async def fake_request(payload):  # type: ignore[no-untyped-def]
        return {"message": {"content": "   "}}

    client._request = fake_request  # type: ignore[method-assign]
    with pytest.raises(UpstreamFailure):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))


def test_factory_picks_backend_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNTHESIS_BACKEND", "ollama")
    monkeypatch.setenv("LLM_MODEL", "llama3")
    assert isinstance(build_synthesis_client(Settings.from_env()), OllamaChatClient)

    monkeypatch.setenv("SYNTHESIS_BACKEND", "openrouter")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
    client = build_synthesis_client(Settings.from_env())
    assert isinstance(client, OpenRouterClient)
    assert client.api_key == "sk-test"
