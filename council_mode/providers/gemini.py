"""Gemini provider via the google-genai async client."""

import logging
import time

from google import genai
from google.genai import types as genai_types

from council_mode.models import AdapterContext, ProviderReply
from council_mode.providers.base import ConfiguredProvider

logger = logging.getLogger(__name__)


def _content(role: str, text: str) -> genai_types.Content:
    return genai_types.Content(role=role, parts=[genai_types.Part(text=text)])


class GeminiProvider(ConfiguredProvider):

    def _make_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    async def query(self, prompt: str, context: AdapterContext | None = None) -> ProviderReply:
        history = context.history if context else []
        # Gemini calls the assistant side "model"
        contents = [_content("model" if m.role == "assistant" else "user", m.content) for m in history]
        contents.append(_content("user", prompt))

        start = time.monotonic()
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    max_output_tokens=self._config.max_tokens,
                    system_instruction=(context.system_prompt or None) if context else None,
                ),
            )
        except Exception as exc:
            raise self._error(f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise self._error("Empty response text")

        tokens = response.usage_metadata.total_token_count if response.usage_metadata else None
        candidate = response.candidates[0] if response.candidates else None
        finish_reason = str(candidate.finish_reason) if candidate and candidate.finish_reason else None
        logger.info("%s: %.2fs, %s tokens, finish=%s", self._config.name, latency, tokens, finish_reason)
        return ProviderReply(content=response.text, tokens_used=tokens, finish_reason=finish_reason)
