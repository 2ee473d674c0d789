"""OpenAI gateway using openai SDK; also serves OpenAI-compatible APIs (xAI, DeepSeek)."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from deliberation.errors import InferenceError
from deliberation.models import Judgment
from deliberation.providers.base import InferenceGateway
from deliberation.providers.parsing import parse_judgment

logger = logging.getLogger(__name__)


class OpenAIGateway(InferenceGateway):
    """OpenAI gateway via openai SDK. Set base_url for compatible endpoints."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise InferenceError(config.name, f"Missing API key: {config.api_key_env}")
        if config.base_url:
            self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        else:
            self._client = AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def analyze(self, system_context: str, user_context: str, temperature: float) -> Judgment:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=[
                        {"role": "system", "content": system_context},
                        {"role": "user", "content": user_context},
                    ],
                    max_tokens=self._config.max_tokens,
                    temperature=temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise InferenceError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise InferenceError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise InferenceError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("OpenAI analyze (%s): %.2fs, %s tokens", self._config.name, latency, token_count)
        return parse_judgment(choice.message.content, self._config.name)
