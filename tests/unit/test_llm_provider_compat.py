from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from cvtailor.llm.providers import LLMProvider, ProviderConfig, parse_json_object


class DummyAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FakeResponsePayload:
    def __init__(self, *, output_text: str = "", raw: dict | None = None):
        self.output_text = output_text
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeChatPayload:
    def __init__(self, *, content: str, raw: dict | None = None):
        self.choices = [SimpleNamespace(message=SimpleNamespace(content=content))]
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeEndpoint:
    def __init__(self, fn):
        self._fn = fn
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._fn(**kwargs)


class FakeClient:
    def __init__(self, *, responses_fn, chat_fn):
        self.responses = FakeEndpoint(responses_fn)
        self.chat = SimpleNamespace(completions=FakeEndpoint(chat_fn))


def _provider_with_fake_client(fake_client: FakeClient) -> LLMProvider:
    provider = LLMProvider(
        ProviderConfig(
            name="openai",
            base_url="http://localhost:9999/v1",
            api_key="dummy",
            timeout_sec=5,
        )
    )
    provider.client = fake_client
    return provider


def _complete(provider: LLMProvider, **overrides):
    kwargs = {
        "model": "gpt-4.1",
        "system": "You are terse.",
        "messages": [{"role": "user", "content": "ping"}],
        "max_tokens": 64,
        "temperature": 0.0,
    }
    kwargs.update(overrides)
    return asyncio.run(provider.complete_text(**kwargs))


def test_provider_disables_client_retries_by_default() -> None:
    provider = LLMProvider(
        ProviderConfig(name="openai", base_url="http://localhost:9999/v1", api_key="dummy", timeout_sec=5)
    )
    assert provider.client.max_retries == 0


def test_complete_text_uses_responses_when_available() -> None:
    def responses_fn(**kwargs):
        return FakeResponsePayload(output_text="RESP_OK", raw={"id": "resp_1"})

    def chat_fn(**kwargs):
        return FakeChatPayload(content="CHAT_OK", raw={"id": "chat_1"})

    client = FakeClient(responses_fn=responses_fn, chat_fn=chat_fn)
    result = _complete(_provider_with_fake_client(client))

    assert result.content == "RESP_OK"
    assert result.raw["api_path"] == "responses"
    assert client.chat.completions.calls == []
    request = client.responses.calls[0]
    assert request["instructions"] == "You are terse."
    assert request["input"] == [{"role": "user", "content": "ping"}]
    assert request["max_output_tokens"] == 64


def test_complete_text_falls_back_to_chat_on_responses_not_found() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        return FakeChatPayload(content="CHAT_OK", raw={"id": "chat_1"})

    client = FakeClient(responses_fn=responses_fn, chat_fn=chat_fn)
    result = _complete(_provider_with_fake_client(client))

    assert result.content == "CHAT_OK"
    assert result.raw["api_path"] == "chat_completions"
    request = client.chat.completions.calls[0]
    assert request["messages"][0] == {"role": "system", "content": "You are terse."}
    assert request["messages"][1:] == [{"role": "user", "content": "ping"}]
    assert request["max_tokens"] == 64


def test_other_responses_errors_are_not_retried_on_chat() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("rate limited", status_code=429)

    def chat_fn(**kwargs):
        return FakeChatPayload(content="CHAT_OK")

    client = FakeClient(responses_fn=responses_fn, chat_fn=chat_fn)
    with pytest.raises(DummyAPIError, match="rate limited"):
        _complete(_provider_with_fake_client(client))
    assert client.chat.completions.calls == []


def test_complete_text_raises_when_fallback_path_also_fails() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        raise RuntimeError("chat path failed")

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    with pytest.raises(RuntimeError, match="chat path failed"):
        _complete(provider)


def test_fenced_chat_fallback_payload_parses_as_object() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        return FakeChatPayload(content='```json\n{"status":"ok","source":"chat"}\n```', raw={"id": "chat_2"})

    provider = _provider_with_fake_client(FakeClient(responses_fn=responses_fn, chat_fn=chat_fn))
    response = _complete(provider, system="json only", messages=[{"role": "user", "content": "json please"}])

    assert parse_json_object(response.content) == {"status": "ok", "source": "chat"}
