from __future__ import annotations

from typing import Optional

import httpx

from taskflow_ai.config import LLMConfig
from taskflow_ai.errors import ConfigurationError
from .base import LLMProvider
from .mock_provider import MockProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider


def build_provider(
    config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> LLMProvider:
    if config.provider == "ollama":
        return OllamaProvider(config, transport=transport)
    if config.provider == "openai":
        return OpenAIProvider(config, transport=transport)
    if config.provider == "mock":
        return MockProvider()
    raise ConfigurationError(f"Unknown LLM provider: {config.provider!r}")
