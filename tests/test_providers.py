"""Tests for ai_debate/providers (message mapping and error classification)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
from google.genai import errors as genai_errors

from config.config_loader import ModelConfig
from ai_debate.models import ContextFragment
from ai_debate.providers.anthropic import AnthropicProvider
from ai_debate.providers.base import CredentialError, ProviderError, to_chat_messages
from ai_debate.providers.gemini import GeminiProvider
from ai_debate.providers.openai_provider import OpenAIProvider


def _config(name: str, sdk: str) -> ModelConfig:
    return ModelConfig(
        name=name, sdk=sdk, model=f"{name}-model", api_key_env=f"TEST_{name.upper()}_KEY",
        timeout_sec=30, max_tokens=256,
    )


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.example.test/v1")
    return cls("rejected", response=httpx.Response(status, request=request), body=None)


async def _drain(provider) -> str:
    return "".join([fragment async for fragment in provider.stream("system", (), "prompt")])


def test_to_chat_messages_maps_roles_and_appends_prompt():
    context = [ContextFragment("other", "[B]: hi"), ContextFragment("self", "[A]: hello")]
    assert to_chat_messages(context, "Your turn") == [
        {"role": "user", "content": "[B]: hi"},
        {"role": "assistant", "content": "[A]: hello"},
        {"role": "user", "content": "Your turn"},
    ]


def test_to_chat_messages_merges_consecutive_roles():
    context = [ContextFragment("other", "[B]: one"), ContextFragment("other", "[C]: two")]
    messages = to_chat_messages(context, "Go")
    assert messages == [{"role": "user", "content": "[B]: one\n\n[C]: two\n\nGo"}]


def test_to_chat_messages_opens_with_user():
    messages = to_chat_messages([ContextFragment("self", "[A]: mine")], "Go")
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]


@pytest.mark.parametrize(
    "cls, sdk",
    [(AnthropicProvider, "anthropic"), (OpenAIProvider, "openai"), (GeminiProvider, "gemini")],
)
def test_missing_key_is_credential_error(cls, sdk, monkeypatch):
    monkeypatch.delenv("TEST_X_KEY", raising=False)
    with pytest.raises(CredentialError, match="Missing API key"):
        cls(_config("x", sdk))


async def test_openai_streams_fragments(monkeypatch):
    monkeypatch.setenv("TEST_GPT_KEY", "sk-test")
    provider = OpenAIProvider(_config("gpt", "openai"))

    async def chunks():
        for text in ["Hel", None, "lo"]:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])

    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(return_value=chunks())

    assert await _drain(provider) == "Hello"
    sent = provider._client.chat.completions.create.call_args.kwargs
    assert sent["stream"] is True
    assert sent["messages"][0] == {"role": "system", "content": "system"}


async def test_openai_auth_error_is_credential_error(monkeypatch):
    monkeypatch.setenv("TEST_GPT_KEY", "sk-test")
    provider = OpenAIProvider(_config("gpt", "openai"))
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(side_effect=_status_error(openai.AuthenticationError, 401))

    with pytest.raises(CredentialError):
        await _drain(provider)


async def test_openai_server_error_is_transient(monkeypatch):
    monkeypatch.setenv("TEST_GPT_KEY", "sk-test")
    provider = OpenAIProvider(_config("gpt", "openai"))
    provider._client = MagicMock()
    provider._client.chat.completions.create = AsyncMock(side_effect=_status_error(openai.InternalServerError, 500))

    with pytest.raises(ProviderError) as info:
        await _drain(provider)
    assert not isinstance(info.value, CredentialError)


async def test_anthropic_auth_error_is_credential_error(monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-ant-test")
    provider = AnthropicProvider(_config("claude", "anthropic"))
    provider._client = MagicMock()
    provider._client.messages.stream.side_effect = _status_error(anthropic.AuthenticationError, 401)

    with pytest.raises(CredentialError):
        await _drain(provider)


async def test_anthropic_rate_limit_is_transient(monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-ant-test")
    provider = AnthropicProvider(_config("claude", "anthropic"))
    provider._client = MagicMock()
    provider._client.messages.stream.side_effect = _status_error(anthropic.RateLimitError, 429)

    with pytest.raises(ProviderError) as info:
        await _drain(provider)
    assert not isinstance(info.value, CredentialError)


def _gemini_provider(monkeypatch) -> GeminiProvider:
    monkeypatch.setenv("TEST_GEMINI_KEY", "gm-test")
    provider = GeminiProvider(_config("gemini", "gemini"))
    provider._client = MagicMock()
    return provider


async def test_gemini_streams_fragments(monkeypatch):
    provider = _gemini_provider(monkeypatch)

    async def chunks():
        for text in ["Hel", None, "lo"]:
            yield SimpleNamespace(text=text)

    provider._client.aio.models.generate_content_stream = AsyncMock(return_value=chunks())

    assert await _drain(provider) == "Hello"
    sent = provider._client.aio.models.generate_content_stream.call_args.kwargs
    assert sent["model"] == "gemini-model"
    assert sent["config"].system_instruction == "system"
    assert [c.role for c in sent["contents"]] == ["user"]


async def test_gemini_invalid_key_is_credential_error(monkeypatch):
    provider = _gemini_provider(monkeypatch)
    rejected = genai_errors.ClientError(
        400,
        {"error": {"code": 400, "message": "API key not valid. Please pass a valid API key.", "status": "INVALID_ARGUMENT"}},
    )
    provider._client.aio.models.generate_content_stream = AsyncMock(side_effect=rejected)

    with pytest.raises(CredentialError):
        await _drain(provider)


async def test_gemini_forbidden_is_credential_error(monkeypatch):
    provider = _gemini_provider(monkeypatch)
    forbidden = genai_errors.ClientError(
        403, {"error": {"code": 403, "message": "Permission denied", "status": "PERMISSION_DENIED"}}
    )
    provider._client.aio.models.generate_content_stream = AsyncMock(side_effect=forbidden)

    with pytest.raises(CredentialError):
        await _drain(provider)


async def test_gemini_unavailable_is_transient(monkeypatch):
    provider = _gemini_provider(monkeypatch)
    overloaded = genai_errors.ServerError(
        503, {"error": {"code": 503, "message": "The model is overloaded.", "status": "UNAVAILABLE"}}
    )
    provider._client.aio.models.generate_content_stream = AsyncMock(side_effect=overloaded)

    with pytest.raises(ProviderError) as info:
        await _drain(provider)
    assert not isinstance(info.value, CredentialError)
