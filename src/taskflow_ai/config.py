from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from taskflow_ai.errors import ConfigurationError

PROVIDERS = {"ollama", "openai", "mock"}


@dataclass(frozen=True)
class LLMConfig:
    """Read-only settings for the text completion service, shared by all runs."""

    provider: str = "ollama"
    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:0.5b"
    api_key: str = ""
    timeout_s: float = 60.0
    temperature: float = 0.2


@dataclass(frozen=True)
class Thresholds:
    """Decision thresholds and fallback confidences used by the stages."""

    confirm_below: float = 0.6
    urgent_confirm_below: float = 0.8
    complex_task_at: int = 4
    long_task_minutes: int = 240

    extraction_fallback_confidence: float = 0.5
    extraction_failure_confidence: float = 0.2
    priority_fallback_confidence: float = 0.5
    priority_default_confidence: float = 0.5
    degraded_confidence: float = 0.3

    title_max_chars: int = 50
    default_duration_min: int = 30

    def __post_init__(self) -> None:
        for name in (
            "confirm_below",
            "urgent_confirm_below",
            "extraction_fallback_confidence",
            "extraction_failure_confidence",
            "priority_fallback_confidence",
            "priority_default_confidence",
            "degraded_confidence",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.title_max_chars < 1:
            raise ConfigurationError("title_max_chars must be positive")


@dataclass(frozen=True)
class PipelineConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Build the configuration once at startup from environment variables."""
        env = os.environ if env is None else env

        provider = env.get("LLM_PROVIDER", "ollama").strip().lower()
        if provider not in PROVIDERS:
            raise ConfigurationError(
                f"LLM_PROVIDER must be one of {sorted(PROVIDERS)}, got {provider!r}"
            )

        if provider == "openai":
            base_url = env.get("OPENAI_BASE_URL", "https://api.openai.com/v1").strip()
            model = env.get("OPENAI_MODEL", "gpt-4o-mini").strip()
        else:
            base_url = env.get("OLLAMA_BASE_URL", "http://localhost:11434").strip()
            model = env.get("OLLAMA_MODEL", "qwen2.5:0.5b").strip()

        llm = LLMConfig(
            provider=provider,
            base_url=base_url.rstrip("/"),
            model=model,
            api_key=env.get("OPENAI_API_KEY", "").strip(),
            timeout_s=_float(env, "LLM_TIMEOUT_S", "60"),
            temperature=_float(env, "LLM_TEMPERATURE", "0.2"),
        )
        if llm.timeout_s <= 0:
            raise ConfigurationError("LLM_TIMEOUT_S must be positive")

        thresholds = Thresholds(
            confirm_below=_float(env, "TASKFLOW_CONFIRM_THRESHOLD", "0.6"),
            urgent_confirm_below=_float(env, "TASKFLOW_URGENT_CONFIRM_THRESHOLD", "0.8"),
        )
        return cls(llm=llm, thresholds=thresholds)


def _float(env: Mapping[str, str], name: str, default: str) -> float:
    raw = env.get(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
