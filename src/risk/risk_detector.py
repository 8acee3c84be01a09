from __future__ import annotations

import logging
from typing import List, Optional

from taskflow_ai.config import Thresholds
from taskflow_ai.models import ExtractedRecord, PriorityAssessment, RiskSignal

logger = logging.getLogger(__name__)

RESCHEDULE_SUGGESTION = (
    "This task is expected to take a long time. "
    "Consider rescheduling it around your other tasks."
)
MISMATCH_SUGGESTION = (
    "An urgent task of this complexity needs attention. "
    "Secure additional resources or reduce its scope."
)


class RiskDetector:
    """Rule-based checks on an extracted record and its priority assessment.

    No model call is made, so the same inputs always give the same signals.
    Signals come out in check order: complexity, duration, mismatch.
    """

    def __init__(self, thresholds: Optional[Thresholds] = None):
        self.thresholds = thresholds or Thresholds()

    def detect(self, extracted: ExtractedRecord, assessment: PriorityAssessment) -> List[RiskSignal]:
        risks: List[RiskSignal] = []
        complex_task = extracted.complexity >= self.thresholds.complex_task_at

        if complex_task:
            risks.append(
                RiskSignal(
                    kind="complexity",
                    severity="high",
                    message=f"Very complex task (complexity {extracted.complexity}/5).",
                )
            )

        if extracted.estimated_duration_min > self.thresholds.long_task_minutes:
            risks.append(
                RiskSignal(
                    kind="duration",
                    severity="medium",
                    message=(
                        f"Long task: estimated {extracted.estimated_duration_min} minutes."
                    ),
                    suggestion=RESCHEDULE_SUGGESTION,
                )
            )

        if assessment.level == "urgent" and complex_task:
            risks.append(
                RiskSignal(
                    kind="priority_complexity_mismatch",
                    severity="high",
                    message="Urgent priority on a highly complex task.",
                    suggestion=MISMATCH_SUGGESTION,
                )
            )

        if risks:
            logger.info("Detected risks: %s", ", ".join(r.kind for r in risks))
        return risks
