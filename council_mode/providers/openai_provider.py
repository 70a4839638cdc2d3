"""OpenAI chat completions, also used for OpenAI-compatible endpoints (xAI, DeepSeek, local gateways)."""

import logging
import time

from openai import AsyncOpenAI

from council_mode.models import AdapterContext, ProviderReply
from council_mode.providers.base import ConfiguredProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(ConfiguredProvider):

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        # base_url=None means api.openai.com
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url or None)

    async def query(self, prompt: str, context: AdapterContext | None = None) -> ProviderReply:
        messages: list[dict[str, str]] = []
        if context:
            if context.system_prompt:
                messages.append({"role": "system", "content": context.system_prompt})
            messages.extend({"role": m.role, "content": m.content} for m in context.history)
        messages.append({"role": "user", "content": prompt})

        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=self._config.max_tokens,
            )
        except Exception as exc:
            raise self._error(f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if choice is None or not choice.message.content:
            raise self._error("Empty response content")

        tokens = response.usage.total_tokens if response.usage else None
        logger.info("%s: %.2fs, %s tokens, finish=%s", self._config.name, latency, tokens, choice.finish_reason)
        return ProviderReply(content=choice.message.content, tokens_used=tokens, finish_reason=choice.finish_reason)
