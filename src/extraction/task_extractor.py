from __future__ import annotations

import json
import logging
from datetime import date
from typing import Optional, Tuple

from pydantic import ValidationError

from taskflow_ai.config import Thresholds
from taskflow_ai.errors import CompletionServiceError, ExtractionParseError
from taskflow_ai.metrics import STAGE_FALLBACK_TOTAL, record
from taskflow_ai.models import Entities, ExtractedRecord, clamp_confidence, derive_title
from extraction.heuristics import (
    find_date_mentions,
    find_tags,
    find_urgency_indicators,
    normalize_due_date,
    resolve_due_date,
)
from llm.llm_client import LLMClient
from llm.parsing import SCHEMA_MISMATCH, SERVICE_ERROR, Fallback, Parsed, parse_model_output
from llm.schemas import ExtractionPayload

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """Extract task information from the user's input.
Today is {today}.
Input: {text}

Respond with a JSON object using exactly these keys:
{{
  "title": "clear, actionable task title",
  "description": "details, or null",
  "dueDate": "YYYY-MM-DD, or null if no deadline is mentioned",
  "tags": ["tag"],
  "entities": {{"people": [], "places": [], "organizations": [], "dates": []}},
  "urgencyKeywords": ["words that signal urgency"],
  "dependencies": ["prerequisites, if any"],
  "estimatedDuration": minutes as an integer,
  "complexity": integer from 1 (trivial) to 5 (very complex),
  "confidence": number from 0.0 to 1.0
}}

JSON only:"""


def derived_confidence(
    title: str, description: Optional[str], due_date: Optional[str], tags: list
) -> float:
    """Confidence from how many fields were recovered, used when the model reports none."""
    confidence = 0.5
    if title and len(title) > 5:
        confidence += 0.2
    if description and len(description) > 10:
        confidence += 0.1
    if due_date:
        confidence += 0.1
    if tags:
        confidence += 0.1
    return clamp_confidence(confidence)


class TaskExtractor:
    """Turns free text into an ``ExtractedRecord``.

    The model is asked for a JSON object. Unusable output or a recoverable
    service error switches to keyword/regex heuristics, so a record is always
    returned. ``CompletionUnavailableError`` is not handled here.
    """

    def __init__(self, llm_client: LLMClient, thresholds: Optional[Thresholds] = None):
        self.llm = llm_client
        self.thresholds = thresholds or Thresholds()

    async def extract(self, text: str) -> ExtractedRecord:
        record_, _ = await self.extract_with_outcome(text)
        return record_

    async def extract_with_outcome(self, text: str) -> Tuple[ExtractedRecord, Optional[Fallback]]:
        today = date.today()
        prompt = EXTRACTION_PROMPT.format(
            today=today.isoformat(), text=json.dumps(text, ensure_ascii=False)
        )
        try:
            raw = await self.llm.complete(prompt)
        except CompletionServiceError as e:
            outcome = Fallback(SERVICE_ERROR, e)
        else:
            outcome = parse_model_output(raw, ExtractionPayload, ExtractionParseError)

        if isinstance(outcome, Parsed):
            try:
                return self._from_payload(outcome.value, text, today), None
            except ValidationError as e:
                outcome = Fallback(
                    SCHEMA_MISMATCH,
                    ExtractionParseError(f"unusable record: {e.error_count()} error(s)"),
                )
        return self.fallback(text, outcome, today), outcome

    def _from_payload(self, payload: ExtractionPayload, text: str, today: date) -> ExtractedRecord:
        title = payload.title or derive_title(text, self.thresholds.title_max_chars)
        due_date = normalize_due_date(payload.due_date, today)
        if payload.due_date and due_date is None:
            logger.info("Ignoring unreadable due date from model: %r", payload.due_date)

        tags = list(payload.tags)
        for tag in find_tags(text):
            if tag not in tags:
                tags.append(tag)

        if payload.confidence is not None:
            confidence = payload.confidence
        else:
            confidence = derived_confidence(title, payload.description, due_date, tags)

        return ExtractedRecord(
            title=title,
            description=payload.description,
            due_date=due_date,
            tags=tags,
            entities=Entities(**payload.entities.model_dump()),
            estimated_duration_min=(
                payload.estimated_duration
                if payload.estimated_duration is not None
                else self.thresholds.default_duration_min
            ),
            complexity=payload.complexity or 2,
            extraction_confidence=confidence,
            urgency_indicators=payload.urgency_keywords or find_urgency_indicators(text),
            dependencies=payload.dependencies,
        )

    def fallback(self, text: str, outcome: Fallback, today: Optional[date] = None) -> ExtractedRecord:
        """Heuristic record built from the raw input alone."""
        logger.warning(
            "Extraction fallback (%s): %s", outcome.reason, outcome.error
        )
        record(STAGE_FALLBACK_TOTAL, stage="extraction", reason=outcome.reason)

        if outcome.reason == SERVICE_ERROR:
            confidence = self.thresholds.extraction_failure_confidence
        else:
            confidence = self.thresholds.extraction_fallback_confidence

        title = derive_title(text, self.thresholds.title_max_chars)
        truncated = len(" ".join(text.split())) > self.thresholds.title_max_chars
        return ExtractedRecord(
            title=title,
            description=text.strip() if truncated else None,
            due_date=resolve_due_date(text, today),
            tags=find_tags(text),
            entities=Entities(dates=find_date_mentions(text)),
            estimated_duration_min=self.thresholds.default_duration_min,
            complexity=2,
            extraction_confidence=confidence,
            urgency_indicators=find_urgency_indicators(text),
        )
