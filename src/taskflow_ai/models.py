from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


PriorityLevel = Literal["low", "medium", "high", "urgent"]
RiskLevel = Literal["low", "medium", "high"]
Severity = Literal["low", "medium", "high"]
RiskKind = Literal["complexity", "duration", "priority_complexity_mismatch"]

PRIORITY_LEVELS: Tuple[str, ...] = ("low", "medium", "high", "urgent")
RISK_LEVELS: Tuple[str, ...] = ("low", "medium", "high")

WORKFLOW_VERSION = "advanced-v2"


def derive_title(text: str, limit: int = 50) -> str:
    """Bounded title for inputs the model could not name."""
    cleaned = " ".join(text.split())
    if not cleaned:
        return "Untitled task"
    if len(cleaned) > limit:
        return cleaned[:limit].rstrip() + "..."
    return cleaned


def clamp_confidence(value: float) -> float:
    return max(0.0, min(float(value), 1.0))


def _dedupe(values: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for v in values:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return out


class Entities(BaseModel):
    people: List[str] = Field(default_factory=list)
    places: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)


class ExtractedRecord(BaseModel):
    """Candidate task fields produced by the structured extractor."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    due_date: Optional[str] = None  # ISO date, YYYY-MM-DD
    tags: List[str] = Field(default_factory=list)
    entities: Entities = Field(default_factory=Entities)
    estimated_duration_min: int = Field(30, ge=0)
    complexity: int = Field(2, ge=1, le=5)
    extraction_confidence: float = Field(..., ge=0.0, le=1.0)

    urgency_indicators: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("title must not be blank")
        return v2

    @field_validator("due_date")
    @classmethod
    def due_date_is_iso(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return date.fromisoformat(v).isoformat()

    @field_validator("tags")
    @classmethod
    def tags_unique(cls, v: List[str]) -> List[str]:
        return _dedupe([t.strip().lstrip("#").strip() for t in v])


class PriorityAssessment(BaseModel):
    level: PriorityLevel = "medium"
    reasoning: str = ""
    risk_level: RiskLevel = "medium"
    assessment_confidence: float = Field(..., ge=0.0, le=1.0)

    risk_factors: List[str] = Field(default_factory=list)
    recommended_time_slot: Optional[str] = None


class RiskSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: RiskKind
    message: str
    severity: Severity
    # advisory text appended to the pipeline suggestions, if any
    suggestion: Optional[str] = None


class TaskMetadata(BaseModel):
    entities: Entities = Field(default_factory=Entities)
    suggested_priority: Optional[PriorityLevel] = None
    priority_reasoning: Optional[str] = None
    complexity: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    risk_factors: List[str] = Field(default_factory=list)
    recommended_time_slot: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    urgency_indicators: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    risk_kinds: List[str] = Field(default_factory=list)
    fallback_stages: List[str] = Field(default_factory=list)
    fallback: bool = False
    workflow_version: str = WORKFLOW_VERSION


class FinalTask(BaseModel):
    """Caller-facing task candidate, ready to be handed to persistence."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: PriorityLevel = "medium"
    due_date: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    estimated_duration_min: int = Field(30, ge=0)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)


class StageTiming(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: str
    duration_ms: int = 0


class PipelineResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    task: FinalTask
    needs_confirmation: bool
    suggestions: Tuple[str, ...] = ()
    risks: Tuple[RiskSignal, ...] = ()
    confidence: float = Field(..., ge=0.0, le=1.0)

    user_id: str = ""
    workflow_path: Tuple[str, ...] = ()
    timings: Tuple[StageTiming, ...] = ()


class PipelineStage(str, Enum):
    STARTED = "started"
    EXTRACTED = "extracted"
    PRIORITIZED = "prioritized"
    RISK_CHECKED = "risk_checked"
    FINALIZED = "finalized"
    FAILED = "failed"


class PipelineState(BaseModel):
    """Per-request state threaded from stage to stage.

    Stages never mutate a state they receive; they return a copy built with
    ``advance`` so earlier snapshots stay intact.
    """

    input_text: str = Field(..., frozen=True)
    user_id: str = Field("", frozen=True)

    extraction: Optional[ExtractedRecord] = None
    priority: Optional[PriorityAssessment] = None
    risks: List[RiskSignal] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    stage_label: PipelineStage = PipelineStage.STARTED
    workflow_path: List[str] = Field(default_factory=lambda: [PipelineStage.STARTED.value])
    fallback_stages: List[str] = Field(default_factory=list)
    result: Optional[PipelineResult] = None

    def advance(
        self,
        stage: PipelineStage,
        *,
        suggestions: Tuple[str, ...] = (),
        fallback: bool = False,
        **changes: Any,
    ) -> "PipelineState":
        """Copy of this state moved to ``stage`` with extra suggestions appended."""
        update = dict(changes)
        if "confidence" in update:
            update["confidence"] = clamp_confidence(update["confidence"])
        update["stage_label"] = stage
        update["workflow_path"] = [*self.workflow_path, stage.value]
        update["suggestions"] = [*self.suggestions, *suggestions]
        if fallback:
            update["fallback_stages"] = [*self.fallback_stages, stage.value]
        return self.model_copy(update=update)
