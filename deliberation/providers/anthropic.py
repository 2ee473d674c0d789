"""Anthropic Claude gateway using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from deliberation.errors import InferenceError
from deliberation.models import Judgment
from deliberation.providers.base import InferenceGateway
from deliberation.providers.parsing import parse_judgment

logger = logging.getLogger(__name__)


class AnthropicGateway(InferenceGateway):
    """Anthropic Claude gateway via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise InferenceError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def analyze(self, system_context: str, user_context: str, temperature: float) -> Judgment:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    system=system_context,
                    temperature=temperature,
                    messages=[{"role": "user", "content": user_context}],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise InferenceError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise InferenceError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        if not text_blocks:
            raise InferenceError(self._config.name, "No text blocks in response")

        logger.info("Anthropic analyze: %.2fs", latency)
        return parse_judgment("\n".join(text_blocks), self._config.name)
