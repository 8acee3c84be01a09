from __future__ import annotations

import logging
from typing import Optional

import httpx

from taskflow_ai.config import LLMConfig
from taskflow_ai.errors import CompletionServiceError, CompletionUnavailableError
from .base import LLMProvider

logger = logging.getLogger(__name__)


class OllamaProvider(LLMProvider):
    name = "ollama"

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.model = config.model
        self.base_url = config.base_url.rstrip("/")
        self.timeout_s = config.timeout_s
        self.temperature = config.temperature
        self._transport = transport

    async def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": model or self.model,
            "stream": False,
            "format": "json",
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "options": {"temperature": self.temperature},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(url, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.ConnectError as e:
            raise CompletionUnavailableError(f"Ollama unreachable at {self.base_url}: {e}") from e
        except httpx.TimeoutException as e:
            raise CompletionServiceError(f"Ollama request timed out after {self.timeout_s}s") from e
        except httpx.HTTPStatusError as e:
            raise CompletionServiceError(f"Ollama returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CompletionServiceError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise CompletionServiceError("Ollama returned a non-JSON body") from e

        try:
            return data["message"]["content"]
        except (KeyError, TypeError) as e:
            logger.debug("Unexpected Ollama envelope: %.200s", data)
            raise CompletionServiceError("Ollama response has no message content") from e
