"""Anthropic Claude provider using anthropic SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator, Sequence

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from ai_debate.models import ContextFragment
from ai_debate.providers.base import AgentProvider, CredentialError, ProviderError, to_chat_messages

logger = logging.getLogger(__name__)


class AnthropicProvider(AgentProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise CredentialError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key, timeout=config.timeout_sec)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(
        self,
        system_prompt: str,
        context: Sequence[ContextFragment],
        prompt: str,
    ) -> AsyncIterator[str]:
        start = time.monotonic()
        chars = 0
        try:
            async with self._client.messages.stream(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                system=system_prompt,
                messages=to_chat_messages(context, prompt),
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        chars += len(text)
                        yield text
        except (anthropic_sdk.AuthenticationError, anthropic_sdk.PermissionDeniedError) as exc:
            raise CredentialError(self._config.name, f"Invalid API key: {exc}") from exc
        except anthropic_sdk.APIError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info("Anthropic stream: %.2fs, %d chars", time.monotonic() - start, chars)
