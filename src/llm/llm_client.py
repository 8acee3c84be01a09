from __future__ import annotations

import asyncio
import logging
from typing import Optional

from taskflow_ai.config import LLMConfig
from taskflow_ai.errors import CompletionServiceError
from taskflow_ai.metrics import LLM_REQUESTS_TOTAL, record
from llm.providers.base import LLMProvider
from llm.providers.factory import build_provider

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM = (
    "You are a task management assistant. "
    "Answer with a single JSON object and nothing else."
)


class LLMClient:
    """Text completion client shared by the model-backed stages.

    Returns raw text; locating and validating JSON is left to the caller.
    Every call is bounded by ``timeout_s`` even when the provider ignores it.
    """

    def __init__(self, provider: LLMProvider, timeout_s: float = 60.0):
        self.provider = provider
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        return cls(build_provider(config), timeout_s=config.timeout_s)

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    async def complete(self, prompt: str, *, system: Optional[str] = None) -> str:
        try:
            text = await asyncio.wait_for(
                self.provider.generate(system=system or DEFAULT_SYSTEM, user=prompt),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            record(LLM_REQUESTS_TOTAL, provider=self.provider_name, status="error")
            raise CompletionServiceError(
                f"completion timed out after {self.timeout_s}s"
            ) from e
        except ConnectionError:
            record(LLM_REQUESTS_TOTAL, provider=self.provider_name, status="unavailable")
            raise
        except CompletionServiceError:
            record(LLM_REQUESTS_TOTAL, provider=self.provider_name, status="error")
            raise
        except Exception as e:
            record(LLM_REQUESTS_TOTAL, provider=self.provider_name, status="error")
            logger.warning("Completion call failed: %s: %s", type(e).__name__, e)
            raise CompletionServiceError(f"completion failed: {type(e).__name__}: {e}") from e

        record(LLM_REQUESTS_TOTAL, provider=self.provider_name, status="ok")
        text = text or ""
        logger.debug("Model responded (%d chars): %.200s", len(text), text)
        return text
