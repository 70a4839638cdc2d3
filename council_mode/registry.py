"""Adapter registry: built once at startup and passed into the dispatcher."""

import logging

from config.config_loader import DEFAULT_TIMEOUTS, AppConfig, ModelConfig, TimeoutConfig
from council_mode.adapter import ModelAdapter
from council_mode.providers.anthropic import AnthropicProvider
from council_mode.providers.base import AIProvider
from council_mode.providers.gemini import GeminiProvider
from council_mode.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

# Keyed by the `sdk` field of a model's settings entry
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "google-genai": GeminiProvider,
}


class AdapterRegistry:
    """Model id to ModelAdapter mapping plus per-model pricing."""

    def __init__(self, timeouts: TimeoutConfig = DEFAULT_TIMEOUTS) -> None:
        self.timeouts = timeouts
        self._adapters: dict[str, ModelAdapter] = {}
        self._pricing: dict[str, tuple[float, float]] = {}

    def register(
        self,
        model_id: str,
        provider: AIProvider,
        display_name: str | None = None,
        pricing: tuple[float, float] | None = None,
    ) -> ModelAdapter:
        adapter = ModelAdapter(provider, model_id, display_name, self.timeouts)
        self._adapters[model_id] = adapter
        if pricing is not None:
            self._pricing[model_id] = pricing
        return adapter

    def get(self, model_id: str) -> ModelAdapter | None:
        return self._adapters.get(model_id)

    def display_name(self, model_id: str) -> str:
        adapter = self._adapters.get(model_id)
        return adapter.display_name if adapter else model_id

    @property
    def pricing(self) -> dict[str, tuple[float, float]]:
        """(input, output) cost per 1K tokens by model id."""
        return dict(self._pricing)

    @property
    def providers(self) -> dict[str, AIProvider]:
        return {model_id: adapter.provider for model_id, adapter in self._adapters.items()}

    def model_ids(self) -> list[str]:
        return list(self._adapters)

    def remove(self, model_id: str) -> None:
        self._adapters.pop(model_id, None)
        self._pricing.pop(model_id, None)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def _build_provider(model_cfg: ModelConfig) -> AIProvider | None:
    provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if provider_cls is None:
        logger.warning("Provider '%s' uses unknown sdk '%s', skipping", model_cfg.name, model_cfg.sdk)
        return None
    try:
        return provider_cls(model_cfg)
    except Exception as exc:
        logger.warning("Failed to instantiate provider '%s': %s", model_cfg.name, exc)
        return None


def build_registry(config: AppConfig) -> AdapterRegistry:
    """Register an adapter for every provider whose API key is present."""
    registry = AdapterRegistry(config.timeouts)
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        provider = _build_provider(model_cfg)
        if provider is None:
            continue
        registry.register(
            name,
            provider,
            display_name=model_cfg.display_name,
            pricing=(model_cfg.cost_input_per_1k, model_cfg.cost_output_per_1k),
        )
    logger.info("Registered %d council model(s): %s", len(registry), ", ".join(registry.model_ids()))
    return registry
