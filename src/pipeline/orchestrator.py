"""Pipeline orchestrator.

Runs extraction, priority analysis, risk detection and finalization in
sequence. Each stage is a ``PipelineState -> PipelineState`` function; any
exception escaping a stage ends the run with the degraded result, so
``run()`` always returns a ``PipelineResult``.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from taskflow_ai.config import PipelineConfig, Thresholds
from taskflow_ai.errors import PipelineFailure
from taskflow_ai.metrics import NEEDS_CONFIRMATION_TOTAL, PIPELINE_RUNS_TOTAL, record
from taskflow_ai.models import (
    FinalTask,
    PipelineResult,
    PipelineStage,
    PipelineState,
    StageTiming,
    TaskMetadata,
    derive_title,
)
from classification.priority_analyzer import PriorityAnalyzer
from extraction.task_extractor import TaskExtractor
from finalization.finalizer import Finalizer, aggregate_confidence
from llm.llm_client import LLMClient
from pipeline.timing import collect_timings, timed_stage
from risk.risk_detector import RiskDetector

logger = logging.getLogger(__name__)

DEGRADED_SUGGESTION = "An error occurred while creating the task. Please re-check the input."

Stage = Callable[[PipelineState], Awaitable[PipelineState]]


class TaskPipeline:
    """Turns free text into a task candidate plus a confirmation decision."""

    def __init__(
        self,
        llm_client: LLMClient,
        thresholds: Optional[Thresholds] = None,
        *,
        extractor: Optional[TaskExtractor] = None,
        analyzer: Optional[PriorityAnalyzer] = None,
        detector: Optional[RiskDetector] = None,
        finalizer: Optional[Finalizer] = None,
    ):
        self.llm = llm_client
        self.thresholds = thresholds or Thresholds()
        self.extractor = extractor or TaskExtractor(llm_client, self.thresholds)
        self.analyzer = analyzer or PriorityAnalyzer(llm_client, self.thresholds)
        self.detector = detector or RiskDetector(self.thresholds)
        self.finalizer = finalizer or Finalizer(self.thresholds)

    @classmethod
    def from_config(
        cls, config: PipelineConfig, llm_client: Optional[LLMClient] = None
    ) -> "TaskPipeline":
        return cls(llm_client or LLMClient.from_config(config.llm), config.thresholds)

    @property
    def stages(self) -> Sequence[Tuple[PipelineStage, Stage]]:
        return (
            (PipelineStage.EXTRACTED, self.extract_stage),
            (PipelineStage.PRIORITIZED, self.priority_stage),
            (PipelineStage.RISK_CHECKED, self.risk_stage),
            (PipelineStage.FINALIZED, self.finalize_stage),
        )

    @timed_stage("extraction")
    async def extract_stage(self, state: PipelineState) -> PipelineState:
        extracted, outcome = await self.extractor.extract_with_outcome(state.input_text)
        return state.advance(
            PipelineStage.EXTRACTED,
            extraction=extracted,
            confidence=extracted.extraction_confidence,
            fallback=outcome is not None,
        )

    @timed_stage("priority")
    async def priority_stage(self, state: PipelineState) -> PipelineState:
        assessment, outcome = await self.analyzer.analyze_with_outcome(state.extraction)
        return state.advance(
            PipelineStage.PRIORITIZED,
            priority=assessment,
            confidence=aggregate_confidence(
                state.extraction.extraction_confidence, assessment.assessment_confidence
            ),
            fallback=outcome is not None,
        )

    @timed_stage("risk")
    async def risk_stage(self, state: PipelineState) -> PipelineState:
        risks = self.detector.detect(state.extraction, state.priority)
        return state.advance(
            PipelineStage.RISK_CHECKED,
            risks=risks,
            suggestions=tuple(r.suggestion for r in risks if r.suggestion),
        )

    @timed_stage("finalize")
    async def finalize_stage(self, state: PipelineState) -> PipelineState:
        result = self.finalizer.finalize(
            state.extraction,
            state.priority,
            state.risks,
            suggestions=state.suggestions,
            user_id=state.user_id,
            workflow_path=[*state.workflow_path, PipelineStage.FINALIZED.value],
            fallback_stages=state.fallback_stages,
        )
        return state.advance(PipelineStage.FINALIZED, result=result, confidence=result.confidence)

    async def _run_stage(self, stage: PipelineStage, fn: Stage, state: PipelineState) -> PipelineState:
        logger.debug("Running stage %s", stage.value)
        try:
            return await fn(state)
        except Exception as e:
            raise PipelineFailure(stage.value, e) from e

    async def run(self, input_text: str, user_id: str = "") -> PipelineResult:
        """Interpret ``input_text`` for ``user_id``. Never raises."""
        text = input_text if isinstance(input_text, str) else str(input_text or "")
        state = PipelineState(input_text=text, user_id=str(user_id or ""))
        logger.info("Pipeline started for user %r", state.user_id)

        with collect_timings() as timings:
            try:
                for stage, fn in self.stages:
                    state = await self._run_stage(stage, fn, state)
            except PipelineFailure as e:
                logger.error("Pipeline failed, returning degraded result: %s", e)
                result = self.degraded_result(text, state.user_id, timings)
                record(PIPELINE_RUNS_TOTAL, outcome="degraded")
                record(NEEDS_CONFIRMATION_TOTAL)
                return result

        result = state.result.model_copy(update={"timings": tuple(timings)})
        record(PIPELINE_RUNS_TOTAL, outcome="completed")
        if result.needs_confirmation:
            record(NEEDS_CONFIRMATION_TOTAL)
        logger.info(
            "Pipeline finished: path=%s confidence=%.2f needs_confirmation=%s",
            "->".join(result.workflow_path),
            result.confidence,
            result.needs_confirmation,
        )
        return result

    def degraded_result(
        self, input_text: str, user_id: str = "", timings: Sequence[StageTiming] = ()
    ) -> PipelineResult:
        """Last-resort result built from the raw input alone."""
        confidence = self.thresholds.degraded_confidence
        task = FinalTask(
            title=derive_title(input_text, self.thresholds.title_max_chars),
            description=input_text.strip() or None,
            priority="medium",
            tags=[],
            estimated_duration_min=self.thresholds.default_duration_min,
            metadata=TaskMetadata(confidence=confidence, fallback=True),
        )
        return PipelineResult(
            task=task,
            needs_confirmation=True,
            suggestions=(DEGRADED_SUGGESTION,),
            confidence=confidence,
            user_id=user_id,
            workflow_path=(PipelineStage.STARTED.value, PipelineStage.FAILED.value),
            timings=tuple(timings),
        )

