"""Tests for the AI client wrapper."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, cast

import pytest
from openai import AsyncOpenAI

from vinsa.ai.client import AIClient, ClientSettings


class _FakeCompletions:
    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else SimpleNamespace(choices=[])
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class _FakeOpenAI:
    def __init__(self, completions: _FakeCompletions | None = None) -> None:
        self.chat = SimpleNamespace(completions=completions or _FakeCompletions())
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _client(fake: _FakeOpenAI, **overrides: Any) -> AIClient:
    settings = ClientSettings(base_url="https://example.invalid/v1", api_key="test-key", **overrides)
    return AIClient(settings, client=cast(AsyncOpenAI, fake))


@pytest.mark.asyncio
async def test_create_chat_completion_forwards_tools_and_sampling() -> None:
    fake = _FakeOpenAI()
    client = _client(fake)
    tools = [{"type": "function", "function": {"name": "echo", "description": "", "parameters": {}}}]

    result = await client.create_chat_completion(
        "model-a",
        [{"role": "user", "content": "hi"}],
        tools=tools,
        temperature=0.2,
        max_tokens=128,
    )

    assert result is fake.chat.completions.response
    payload = fake.chat.completions.calls[0]
    assert payload["model"] == "model-a"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["tools"] == tools
    assert payload["tool_choice"] == "auto"
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 128


@pytest.mark.asyncio
async def test_create_chat_completion_omits_empty_tools_and_unset_values() -> None:
    fake = _FakeOpenAI()
    client = _client(fake)

    await client.create_chat_completion("model-a", [{"role": "user", "content": "hi"}], tools=[])

    payload = fake.chat.completions.calls[0]
    assert "tools" not in payload
    assert "tool_choice" not in payload
    assert "temperature" not in payload
    assert "max_tokens" not in payload


@pytest.mark.asyncio
async def test_create_chat_completion_requires_messages() -> None:
    client = _client(_FakeOpenAI())

    with pytest.raises(ValueError):
        await client.create_chat_completion("model-a", [])


@pytest.mark.asyncio
async def test_transport_errors_propagate_unchanged() -> None:
    error = RuntimeError("connection reset")
    fake = _FakeOpenAI(_FakeCompletions(error=error))
    client = _client(fake, debug_logging=True)

    with pytest.raises(RuntimeError) as excinfo:
        await client.create_chat_completion("model-a", [{"role": "user", "content": "hi"}])

    assert excinfo.value is error
    assert len(fake.chat.completions.calls) == 1


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    fake = _FakeOpenAI()
    client = _client(fake)

    await client.aclose()

    assert fake.closed


@pytest.mark.asyncio
async def test_built_client_never_retries_on_its_own() -> None:
    client = AIClient(ClientSettings(base_url="https://example.invalid/v1", api_key="test-key"))
    try:
        assert client._client.max_retries == 0
    finally:
        await client.aclose()
