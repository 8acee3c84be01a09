from __future__ import annotations

from typing import Optional

import httpx

from taskflow_ai.config import LLMConfig
from taskflow_ai.errors import (
    CompletionServiceError,
    CompletionUnavailableError,
    ConfigurationError,
)
from .base import LLMProvider


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = config.api_key
        self.model = config.model
        self.base_url = config.base_url.rstrip("/")
        self.timeout_s = config.timeout_s
        self.temperature = config.temperature
        self._transport = transport

        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is missing")

    async def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model or self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(url, headers=headers, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.ConnectError as e:
            raise CompletionUnavailableError(f"OpenAI endpoint unreachable: {e}") from e
        except httpx.TimeoutException as e:
            raise CompletionServiceError(f"OpenAI request timed out after {self.timeout_s}s") from e
        except httpx.HTTPStatusError as e:
            raise CompletionServiceError(f"OpenAI returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise CompletionServiceError(f"OpenAI request failed: {e}") from e
        except ValueError as e:
            raise CompletionServiceError("OpenAI returned a non-JSON body") from e

        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionServiceError("OpenAI response has no choices") from e
