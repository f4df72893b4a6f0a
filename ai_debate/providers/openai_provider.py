"""OpenAI provider using openai SDK streaming chat completions."""

import logging
import os
import time
from collections.abc import AsyncIterator, Sequence

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from ai_debate.models import ContextFragment
from ai_debate.providers.base import AgentProvider, CredentialError, ProviderError, to_chat_messages

logger = logging.getLogger(__name__)


class OpenAIProvider(AgentProvider):
    """OpenAI provider via openai SDK. Also serves OpenAI-compatible APIs through base_url."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise CredentialError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url, timeout=config.timeout_sec)

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
            response = await self._client.chat.completions.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                messages=[{"role": "system", "content": system_prompt}, *to_chat_messages(context, prompt)],
                stream=True,
            )
            async for chunk in response:
                content = chunk.choices[0].delta.content if chunk.choices else None
                if content:
                    chars += len(content)
                    yield content
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise CredentialError(self._config.name, f"Invalid API key: {exc}") from exc
        except openai.APIError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info("OpenAI stream: %.2fs, %d chars", time.monotonic() - start, chars)
