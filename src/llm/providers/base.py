from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional


class LLMProvider(ABC):
    name: str = "base"

    @abstractmethod
    async def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        """
        Must return the model output as TEXT (the stages locate/validate JSON themselves).

        Raise CompletionUnavailableError when the service cannot be reached and
        CompletionServiceError for any other transport or envelope problem.
        """
        raise NotImplementedError
