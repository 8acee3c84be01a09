from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from taskflow_ai.config import Thresholds
from taskflow_ai.models import (
    ExtractedRecord,
    FinalTask,
    PipelineResult,
    PriorityAssessment,
    RiskSignal,
    StageTiming,
    TaskMetadata,
    clamp_confidence,
)

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_SUGGESTION = (
    "Describe the task more specifically so it can be interpreted with more confidence."
)
URGENT_RECHECK_SUGGESTION = (
    "This task was marked urgent. Please re-verify its content before saving."
)
MISSING_DUE_DATE_SUGGESTION = "High-priority task without a due date. Consider setting one."
HIGH_RISK_SUGGESTION = "High-risk factors detected. Review the task before saving."
SPLIT_TASK_SUGGESTION = "This is a complex task. Consider splitting it into smaller subtasks."


def aggregate_confidence(extraction_confidence: float, assessment_confidence: float) -> float:
    """Additive combination of the two stage confidences, capped at 1.0."""
    return clamp_confidence(min(extraction_confidence + assessment_confidence, 1.0))


class Finalizer:
    """Decision gate: merges the stage outputs and decides on confirmation."""

    def __init__(self, thresholds: Optional[Thresholds] = None):
        self.thresholds = thresholds or Thresholds()

    def decide(
        self,
        extracted: ExtractedRecord,
        assessment: PriorityAssessment,
        risks: Sequence[RiskSignal],
    ) -> Tuple[float, bool, List[str]]:
        """Aggregate confidence, confirmation flag and the suggestions it implies."""
        t = self.thresholds
        confidence = aggregate_confidence(
            extracted.extraction_confidence, assessment.assessment_confidence
        )
        needs_confirmation = confidence < t.confirm_below
        suggestions: List[str] = []

        if needs_confirmation:
            suggestions.append(LOW_CONFIDENCE_SUGGESTION)

        if assessment.level == "urgent" and confidence < t.urgent_confirm_below:
            needs_confirmation = True
            suggestions.append(URGENT_RECHECK_SUGGESTION)

        if assessment.level == "high" and not extracted.due_date:
            suggestions.append(MISSING_DUE_DATE_SUGGESTION)

        if any(r.severity == "high" for r in risks):
            needs_confirmation = True
            suggestions.append(HIGH_RISK_SUGGESTION)

        if extracted.complexity >= t.complex_task_at:
            suggestions.append(SPLIT_TASK_SUGGESTION)

        return confidence, needs_confirmation, suggestions

    def build_task(
        self,
        extracted: ExtractedRecord,
        assessment: PriorityAssessment,
        risks: Sequence[RiskSignal],
        confidence: float,
        fallback_stages: Iterable[str] = (),
    ) -> FinalTask:
        metadata = TaskMetadata(
            entities=extracted.entities,
            suggested_priority=assessment.level,
            priority_reasoning=assessment.reasoning or None,
            complexity=extracted.complexity,
            risk_level=assessment.risk_level,
            risk_factors=list(assessment.risk_factors),
            recommended_time_slot=assessment.recommended_time_slot,
            confidence=confidence,
            urgency_indicators=list(extracted.urgency_indicators),
            dependencies=list(extracted.dependencies),
            risk_kinds=[r.kind for r in risks],
            fallback_stages=list(fallback_stages),
        )
        return FinalTask(
            title=extracted.title,
            description=extracted.description,
            priority=assessment.level or "medium",
            due_date=extracted.due_date,
            tags=list(extracted.tags),
            estimated_duration_min=(
                extracted.estimated_duration_min or self.thresholds.default_duration_min
            ),
            metadata=metadata,
        )

    def finalize(
        self,
        extracted: ExtractedRecord,
        assessment: PriorityAssessment,
        risks: Sequence[RiskSignal],
        *,
        suggestions: Sequence[str] = (),
        user_id: str = "",
        workflow_path: Sequence[str] = (),
        fallback_stages: Sequence[str] = (),
        timings: Sequence[StageTiming] = (),
    ) -> PipelineResult:
        """Build the caller-facing result.

        ``suggestions`` are the ones gathered by earlier stages; the gate's own
        suggestions are appended after them.
        """
        confidence, needs_confirmation, gate_suggestions = self.decide(
            extracted, assessment, risks
        )
        task = self.build_task(extracted, assessment, risks, confidence, fallback_stages)

        logger.info(
            "Finalized task %r: priority=%s confidence=%.2f needs_confirmation=%s",
            task.title,
            task.priority,
            confidence,
            needs_confirmation,
        )
        return PipelineResult(
            task=task,
            needs_confirmation=needs_confirmation,
            suggestions=(*suggestions, *gate_suggestions),
            risks=tuple(risks),
            confidence=confidence,
            user_id=user_id,
            workflow_path=tuple(workflow_path),
            timings=tuple(timings),
        )
