"""Provider interface, plus the shared base for SDK-backed council members."""

import os
from abc import ABC, abstractmethod
from typing import Any

from config.config_loader import ModelConfig
from council_mode.models import AdapterContext, ProviderReply


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """One model backend.

    Providers are stateless apart from their SDK client and may be shared
    across concurrent dispatches. They do not enforce timeouts or retries;
    the ModelAdapter wrapping them does.
    """

    @abstractmethod
    def name(self) -> str:
        """Short model id, e.g. 'claude'."""
        ...

    @abstractmethod
    async def query(self, prompt: str, context: AdapterContext | None = None) -> ProviderReply:
        """Send a prompt and return the complete reply.

        Raises:
            ProviderError: On API failure or an empty/invalid response.
        """
        ...


class ConfiguredProvider(AIProvider):
    """AIProvider built from a ModelConfig entry, with its API key read from the environment."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    @abstractmethod
    def _make_client(self, api_key: str) -> Any:
        ...

    def name(self) -> str:
        return self._config.name

    def _error(self, message: str) -> ProviderError:
        return ProviderError(self._config.name, message)
