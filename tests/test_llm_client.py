import json

import httpx
import pytest

from docchat_server.core.errors import ModelCallError
from docchat_server.llm.client import LLMClient
from docchat_server.tools.definitions import TOOL_DEFINITIONS


def _client(handler):
    return LLMClient(
        api_key="sk-test",
        model="chat-test",
        base_url="https://api.example.test/v1",
        temperature=0.2,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_complete_returns_first_choice_message():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        assert str(request.url) == "https://api.example.test/v1/chat/completions"
        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": "Hi!"}}]},
        )

    message = await _client(handler).complete([{"role": "user", "content": "hello"}])

    assert message == {"role": "assistant", "content": "Hi!"}
    assert captured["model"] == "chat-test"
    assert captured["temperature"] == 0.2
    assert "tools" not in captured


@pytest.mark.asyncio
async def test_complete_sends_tools_when_given():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    await _client(handler).complete([{"role": "user", "content": "q"}], TOOL_DEFINITIONS)

    assert captured["tools"] == TOOL_DEFINITIONS


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{"message": None}]}])
async def test_complete_without_message_returns_none(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    assert await _client(handler).complete([{"role": "user", "content": "q"}]) is None


@pytest.mark.asyncio
async def test_complete_http_error_raises_model_call_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": "rate limited"})

    with pytest.raises(ModelCallError):
        await _client(handler).complete([{"role": "user", "content": "q"}])
