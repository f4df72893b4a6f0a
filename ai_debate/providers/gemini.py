"""Gemini provider using google-genai SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from ai_debate.models import ContextFragment
from ai_debate.providers.base import AgentProvider, CredentialError, ProviderError, to_chat_messages

logger = logging.getLogger(__name__)

_CREDENTIAL_CODES = {401, 403}


def _is_credential_error(exc: genai_errors.APIError) -> bool:
    # Gemini answers an unknown key with 400 INVALID_ARGUMENT and this text
    return exc.code in _CREDENTIAL_CODES or "API key not valid" in str(exc)


class GeminiProvider(AgentProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise CredentialError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=config.timeout_sec * 1000),
        )

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
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in to_chat_messages(context, prompt)
        ]
        start = time.monotonic()
        chars = 0
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    max_output_tokens=self._config.max_tokens,
                ),
            )
            async for chunk in response:
                if chunk.text:
                    chars += len(chunk.text)
                    yield chunk.text
        except genai_errors.APIError as exc:
            if _is_credential_error(exc):
                raise CredentialError(self._config.name, f"Invalid API key: {exc}") from exc
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info("Gemini stream: %.2fs, %d chars", time.monotonic() - start, chars)
