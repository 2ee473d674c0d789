"""Gemini gateway using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from deliberation.errors import InferenceError
from deliberation.models import Judgment
from deliberation.providers.base import InferenceGateway
from deliberation.providers.parsing import parse_judgment

logger = logging.getLogger(__name__)


class GeminiGateway(InferenceGateway):
    """Google Gemini gateway via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise InferenceError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def analyze(self, system_context: str, user_context: str, temperature: float) -> Judgment:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=user_context,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system_context,
                        temperature=temperature,
                        max_output_tokens=self._config.max_tokens,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise InferenceError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise InferenceError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise InferenceError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini analyze: %.2fs, %s tokens", latency, token_count)
        return parse_judgment(response.text, self._config.name)
