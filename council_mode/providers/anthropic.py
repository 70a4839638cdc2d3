"""Anthropic Messages API provider."""

import logging
import time
from typing import Any

import anthropic as anthropic_sdk

from council_mode.models import AdapterContext, ProviderReply
from council_mode.providers.base import ConfiguredProvider

logger = logging.getLogger(__name__)


def _build_messages(prompt: str, context: AdapterContext | None) -> list[dict[str, str]]:
    """Messages API needs strictly alternating turns that start with the user."""
    messages: list[dict[str, str]] = []
    turns = [(m.role, m.content) for m in context.history] if context else []
    turns.append(("user", prompt))
    for role, content in turns:
        if not messages and role != "user":
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + content
        else:
            messages.append({"role": role, "content": content})
    return messages


class AnthropicProvider(ConfiguredProvider):

    def _make_client(self, api_key: str) -> anthropic_sdk.AsyncAnthropic:
        return anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def query(self, prompt: str, context: AdapterContext | None = None) -> ProviderReply:
        request: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "messages": _build_messages(prompt, context),
        }
        if context and context.system_prompt:
            request["system"] = context.system_prompt
        start = time.monotonic()
        try:
            response = await self._client.messages.create(**request)
        except Exception as exc:
            raise self._error(f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text = "\n".join(block.text for block in response.content or [] if block.type == "text")
        if not text:
            raise self._error("Empty response content")

        usage = response.usage
        tokens = usage.input_tokens + usage.output_tokens if usage else None
        logger.info("%s: %.2fs, %s tokens, stop=%s", self._config.name, latency, tokens, response.stop_reason)
        return ProviderReply(content=text, tokens_used=tokens, finish_reason=response.stop_reason)
