"""Unit tests for the SDK gateways — SDK clients replaced with mocks, no network."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.config_loader import ModelConfig
from deliberation.errors import InferenceError
from deliberation.providers.anthropic import AnthropicGateway
from deliberation.providers.gemini import GeminiGateway
from deliberation.providers.openai_provider import OpenAIGateway

_REPLY = '{"stance": "Refund", "confidence": 0.9, "arguments": ["Duplicate capture"]}'


def _config(sdk: str, base_url: str | None = None) -> ModelConfig:
    return ModelConfig(
        name=f"test_{sdk}",
        sdk=sdk,
        model="test-model-1",
        api_key_env="TEST_GATEWAY_KEY",
        timeout_sec=1,
        max_tokens=256,
        base_url=base_url,
    )


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setenv("TEST_GATEWAY_KEY", "sk-test")


@pytest.mark.parametrize("gateway_cls, sdk", [
    (AnthropicGateway, "anthropic"),
    (OpenAIGateway, "openai"),
    (GeminiGateway, "gemini"),
])
def test_missing_key_raises(monkeypatch, gateway_cls, sdk):
    monkeypatch.delenv("TEST_GATEWAY_KEY")
    with pytest.raises(InferenceError, match="Missing API key"):
        gateway_cls(_config(sdk))


async def test_anthropic_parses_text_blocks():
    gateway = AnthropicGateway(_config("anthropic"))
    create = AsyncMock(return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text=_REPLY)]))
    gateway._client = MagicMock()
    gateway._client.messages.create = create

    judgment = await gateway.analyze("persona", "case", 0.3)

    assert judgment.stance == "Refund"
    assert judgment.confidence == 0.9
    kwargs = create.await_args.kwargs
    assert kwargs["system"] == "persona"
    assert kwargs["temperature"] == 0.3
    assert kwargs["messages"] == [{"role": "user", "content": "case"}]


async def test_anthropic_without_text_blocks_raises():
    gateway = AnthropicGateway(_config("anthropic"))
    gateway._client = MagicMock()
    gateway._client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[]))
    with pytest.raises(InferenceError, match="No text blocks"):
        await gateway.analyze("persona", "case", 0.3)


async def test_openai_sends_system_and_user_messages():
    gateway = OpenAIGateway(_config("openai", base_url="https://api.x.ai/v1"))
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=_REPLY))],
        usage=SimpleNamespace(total_tokens=42),
    )
    create = AsyncMock(return_value=response)
    gateway._client = MagicMock()
    gateway._client.chat.completions.create = create

    judgment = await gateway.analyze("persona", "case", 0.1)

    assert judgment.arguments == ["Duplicate capture"]
    messages = create.await_args.kwargs["messages"]
    assert messages[0] == {"role": "system", "content": "persona"}
    assert messages[1] == {"role": "user", "content": "case"}


async def test_openai_malformed_reply_raises():
    gateway = OpenAIGateway(_config("openai"))
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Just refund it."))], usage=None)
    gateway._client = MagicMock()
    gateway._client.chat.completions.create = AsyncMock(return_value=response)
    with pytest.raises(InferenceError, match="Malformed judgment"):
        await gateway.analyze("persona", "case", 0.1)


async def test_gemini_parses_response_text():
    gateway = GeminiGateway(_config("gemini"))
    gateway._client = MagicMock()
    gateway._client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(text=_REPLY, usage_metadata=None)
    )
    judgment = await gateway.analyze("persona", "case", 0.3)
    assert judgment.stance == "Refund"


async def test_api_error_is_wrapped():
    gateway = OpenAIGateway(_config("openai"))
    gateway._client = MagicMock()
    gateway._client.chat.completions.create = AsyncMock(side_effect=ConnectionError("reset"))
    with pytest.raises(InferenceError, match="API call failed: reset") as exc_info:
        await gateway.analyze("persona", "case", 0.1)
    assert exc_info.value.agent == "test_openai"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


async def test_timeout_is_wrapped():
    gateway = AnthropicGateway(_config("anthropic"))

    async def hang(**kwargs):
        await asyncio.sleep(9999)

    gateway._client = MagicMock()
    gateway._client.messages.create = hang
    gateway._config.timeout_sec = 0.05
    with pytest.raises(InferenceError, match="timed out"):
        await gateway.analyze("persona", "case", 0.3)
