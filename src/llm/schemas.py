"""Schemas for the JSON objects the language model is asked to return.

Model output is duck-typed: keys come in camelCase or snake_case, numbers
arrive as strings, lists arrive as comma separated strings. The validators
here coerce what can be coerced and raise for shapes that cannot mean what
the prompt asked for, which the stages treat as a schema mismatch.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from taskflow_ai.models import PRIORITY_LEVELS, RISK_LEVELS

_NULLISH = {"", "null", "none", "n/a", "없음", "미정", "unknown"}
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

PRIORITY_SYNONYMS = {
    "critical": "urgent",
    "긴급": "urgent",
    "높음": "high",
    "중요": "high",
    "보통": "medium",
    "중간": "medium",
    "normal": "medium",
    "낮음": "low",
}


def _optional_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValueError("expected text, got a boolean")
    if isinstance(v, (int, float)):
        return str(v)
    if not isinstance(v, str):
        raise ValueError(f"expected text, got {type(v).__name__}")
    text = v.strip()
    return None if text.lower() in _NULLISH else text


def _text_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [p.strip() for p in re.split(r"[,\n]", v) if p.strip()]
    if not isinstance(v, (list, tuple)):
        raise ValueError(f"expected a list, got {type(v).__name__}")
    out = []
    for item in v:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            text = str(item).strip()
            if text:
                out.append(text)
    return out


def _optional_number(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        m = _NUMBER_RE.search(v)
        return float(m.group(0)) if m else None
    return None


class EntitiesPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    people: List[str] = Field(default_factory=list)
    places: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)

    @field_validator("people", "places", "organizations", "dates", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        return _text_list(v)


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = Field(
        None, validation_alias=AliasChoices("dueDate", "due_date", "deadline")
    )
    tags: List[str] = Field(default_factory=list)
    entities: EntitiesPayload = Field(default_factory=EntitiesPayload)
    estimated_duration: Optional[int] = Field(
        None,
        validation_alias=AliasChoices(
            "estimatedDuration", "estimated_duration", "estimated_duration_min"
        ),
    )
    complexity: Optional[int] = None
    confidence: Optional[float] = None
    urgency_keywords: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("urgencyKeywords", "urgencyIndicators", "urgency_keywords"),
    )
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("title", "description", "due_date", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator("tags", "urgency_keywords", "dependencies", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        return _text_list(v)

    @field_validator("entities", mode="before")
    @classmethod
    def entities_object(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("entities must be an object")
        return v

    @field_validator("estimated_duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> Optional[int]:
        n = _optional_number(v)
        return None if n is None else max(0, int(round(n)))

    @field_validator("complexity", mode="before")
    @classmethod
    def coerce_complexity(cls, v: Any) -> Optional[int]:
        n = _optional_number(v)
        return None if n is None else max(1, min(5, int(round(n))))

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v: Any) -> Optional[float]:
        return _confidence(v)


class PriorityPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    priority: str
    reasoning: str = ""
    risk_level: str = Field("medium", validation_alias=AliasChoices("riskLevel", "risk_level"))
    confidence: Optional[float] = None
    risk_factors: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("riskFactors", "risk_factors")
    )
    recommended_time_slot: Optional[str] = Field(
        None, validation_alias=AliasChoices("recommendedTimeSlot", "recommended_time_slot")
    )

    @field_validator("priority", mode="before")
    @classmethod
    def known_priority(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("priority must be text")
        level = v.strip().lower()
        level = PRIORITY_SYNONYMS.get(level, level)
        if level not in PRIORITY_LEVELS:
            raise ValueError(f"unknown priority {v!r}")
        return level

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, v: Any) -> str:
        return _optional_text(v) or ""

    @field_validator("risk_level", mode="before")
    @classmethod
    def known_risk_level(cls, v: Any) -> str:
        level = (_optional_text(v) or "medium").lower()
        level = {"높음": "high", "중간": "medium", "보통": "medium", "낮음": "low"}.get(level, level)
        return level if level in RISK_LEVELS else "medium"

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v: Any) -> Optional[float]:
        return _confidence(v)

    @field_validator("risk_factors", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> List[str]:
        return _text_list(v)

    @field_validator("recommended_time_slot", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)


def _confidence(v: Any) -> Optional[float]:
    n = _optional_number(v)
    if n is None:
        return None
    # "85%" or 85 is a percentage; 1.5 is an over-range fraction and gets capped
    if (isinstance(v, str) and "%" in v) or 2.0 <= n <= 100.0:
        n = n / 100.0
    return max(0.0, min(n, 1.0))
