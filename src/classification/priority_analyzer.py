from __future__ import annotations

import json
import logging
from typing import Optional, Tuple

from taskflow_ai.config import Thresholds
from taskflow_ai.errors import AnalysisParseError, CompletionServiceError
from taskflow_ai.metrics import STAGE_FALLBACK_TOTAL, record
from taskflow_ai.models import ExtractedRecord, PriorityAssessment
from extraction.heuristics import keyword_priority
from llm.llm_client import LLMClient
from llm.parsing import SERVICE_ERROR, Fallback, Parsed, parse_model_output
from llm.schemas import PriorityPayload

logger = logging.getLogger(__name__)

PRIORITY_PROMPT = """Analyze task priority and risk.
Title: {title}
Description: {description}
Due date: {due_date}
Estimated duration (minutes): {duration}
Complexity (1-5): {complexity}
Urgency keywords: {urgency}

Respond with a JSON object:
{{
  "priority": "low" | "medium" | "high" | "urgent",
  "reasoning": "one or two sentences",
  "riskLevel": "low" | "medium" | "high",
  "riskFactors": ["..."],
  "recommendedTimeSlot": "e.g. morning, or null",
  "confidence": number from 0.0 to 1.0
}}

JSON only:"""


class PriorityAnalyzer:
    """Assigns a priority level and risk level to an extracted record.

    Falls back to keyword matching when the model answer is unusable.
    """

    def __init__(self, llm_client: LLMClient, thresholds: Optional[Thresholds] = None):
        self.llm = llm_client
        self.thresholds = thresholds or Thresholds()

    def build_prompt(self, extracted: ExtractedRecord) -> str:
        return PRIORITY_PROMPT.format(
            title=extracted.title,
            description=extracted.description or "none",
            due_date=extracted.due_date or "none",
            duration=extracted.estimated_duration_min,
            complexity=extracted.complexity,
            urgency=json.dumps(extracted.urgency_indicators, ensure_ascii=False),
        )

    async def analyze(self, extracted: ExtractedRecord) -> PriorityAssessment:
        assessment, _ = await self.analyze_with_outcome(extracted)
        return assessment

    async def analyze_with_outcome(
        self, extracted: ExtractedRecord
    ) -> Tuple[PriorityAssessment, Optional[Fallback]]:
        try:
            raw = await self.llm.complete(self.build_prompt(extracted))
        except CompletionServiceError as e:
            outcome = Fallback(SERVICE_ERROR, e)
        else:
            outcome = parse_model_output(raw, PriorityPayload, AnalysisParseError)

        if isinstance(outcome, Parsed):
            payload: PriorityPayload = outcome.value
            confidence = payload.confidence
            if confidence is None:
                confidence = self.thresholds.priority_default_confidence
            return (
                PriorityAssessment(
                    level=payload.priority,
                    reasoning=payload.reasoning,
                    risk_level=payload.risk_level,
                    assessment_confidence=confidence,
                    risk_factors=payload.risk_factors,
                    recommended_time_slot=payload.recommended_time_slot,
                ),
                None,
            )
        return self.fallback(extracted, outcome), outcome

    def fallback(self, extracted: ExtractedRecord, outcome: Fallback) -> PriorityAssessment:
        logger.warning("Priority fallback (%s): %s", outcome.reason, outcome.error)
        record(STAGE_FALLBACK_TOTAL, stage="priority", reason=outcome.reason)

        text = " ".join(
            [extracted.title, extracted.description or "", *extracted.urgency_indicators]
        )
        level, keyword = keyword_priority(text)
        if keyword:
            reasoning = f"keyword-based analysis: matched {keyword!r}"
        else:
            reasoning = "keyword-based analysis: no priority keywords found"
        return PriorityAssessment(
            level=level,
            reasoning=reasoning,
            risk_level="medium",
            assessment_confidence=self.thresholds.priority_fallback_confidence,
        )
