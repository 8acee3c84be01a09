import asyncio
import json
from datetime import date, timedelta

import pytest
from prometheus_client import REGISTRY

from finalization.finalizer import HIGH_RISK_SUGGESTION
from llm.llm_client import LLMClient
from llm.providers.mock_provider import MockProvider
from pipeline.orchestrator import DEGRADED_SUGGESTION, TaskPipeline
from risk.risk_detector import MISMATCH_SUGGESTION, RiskDetector
from taskflow_ai.config import PipelineConfig
from taskflow_ai.errors import CompletionServiceError, CompletionUnavailableError
from taskflow_ai.models import (
    ExtractedRecord,
    PipelineStage,
    PipelineState,
    PriorityAssessment,
)

SUCCESS_PATH = ("started", "extracted", "prioritized", "risk_checked", "finalized")


def _pipeline(provider) -> TaskPipeline:
    return TaskPipeline(LLMClient(provider=provider, timeout_s=5.0))


def _runs(outcome: str) -> float:
    return REGISTRY.get_sample_value("taskflow_pipeline_runs_total", {"outcome": outcome}) or 0.0


def test_happy_path(scripted_provider_factory):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    provider = scripted_provider_factory(
        json.dumps(
            {
                "title": "프로젝트 보고서 작성",
                "dueDate": tomorrow,
                "tags": [],
                "complexity": 2,
                "estimatedDuration": 60,
                "confidence": 0.9,
            },
            ensure_ascii=False,
        ),
        json.dumps(
            {"priority": "high", "reasoning": "deadline tomorrow", "riskLevel": "medium", "confidence": 0.8}
        ),
    )
    result = asyncio.run(_pipeline(provider).run("내일까지 프로젝트 보고서 작성", "user-1"))

    assert result.confidence == 1.0
    assert result.needs_confirmation is False
    assert not [r for r in result.risks if r.severity == "high"]
    assert result.task.priority == "high"
    assert result.task.title == "프로젝트 보고서 작성"
    assert result.task.due_date == tomorrow
    assert result.task.estimated_duration_min == 60
    assert result.user_id == "user-1"
    assert result.workflow_path == SUCCESS_PATH
    assert [t.stage for t in result.timings] == ["extraction", "priority", "risk", "finalize"]
    assert result.task.metadata.fallback is False


def test_total_outage_returns_degraded_result(raising_provider_factory):
    provider = raising_provider_factory(ConnectionRefusedError("connection refused"))
    text = "긴급히 프레젠테이션 준비해야 함, 내일 오전 회의 전까지 임원 보고용 슬라이드 20장을 만들어야 한다"
    before = _runs("degraded")

    result = asyncio.run(_pipeline(provider).run(text, "user-2"))

    assert result.task.title == text[:50].rstrip() + "..."
    assert result.task.priority == "medium"
    assert result.task.tags == []
    assert result.confidence == 0.3
    assert result.needs_confirmation is True
    assert result.suggestions == (DEGRADED_SUGGESTION,)
    assert result.workflow_path == ("started", "failed")
    assert result.task.metadata.fallback is True
    assert result.user_id == "user-2"
    assert provider.calls == 1
    assert _runs("degraded") == before + 1


def test_unavailable_during_priority_stage_degrades(scripted_provider_factory):
    provider = scripted_provider_factory(
        '{"title": "Call mom", "confidence": 0.9}',
        CompletionUnavailableError("connection refused"),
    )
    result = asyncio.run(_pipeline(provider).run("Call mom", "u"))
    assert result.workflow_path == ("started", "failed")
    assert result.confidence == 0.3


def test_unexpected_provider_error_uses_stage_fallbacks(raising_provider_factory):
    result = asyncio.run(_pipeline(raising_provider_factory(RuntimeError("boom"))).run("Call mom", "u"))
    assert result.workflow_path == SUCCESS_PATH
    assert result.task.title == "Call mom"
    assert result.confidence == pytest.approx(0.7)
    assert result.task.metadata.fallback_stages == ["extracted", "prioritized"]


def test_provider_error_in_priority_keeps_the_extraction(scripted_provider_factory):
    provider = scripted_provider_factory(
        '{"title": "Call mom about the weekend", "confidence": 0.9}',
        RuntimeError("boom"),
    )
    result = asyncio.run(_pipeline(provider).run("Call mom", "u"))
    assert result.workflow_path == SUCCESS_PATH
    assert result.task.title == "Call mom about the weekend"
    assert result.task.priority == "medium"
    assert result.confidence == 1.0
    assert result.task.metadata.fallback_stages == ["prioritized"]


def test_builtin_timeout_from_provider_uses_stage_fallbacks(raising_provider_factory):
    result = asyncio.run(_pipeline(raising_provider_factory(TimeoutError("read timed out"))).run("Call mom", "u"))
    assert result.workflow_path == SUCCESS_PATH
    assert result.task.metadata.fallback_stages == ["extracted", "prioritized"]


def test_error_inside_a_stage_degrades(fake_provider_factory):
    class BrokenDetector(RiskDetector):
        def detect(self, extracted, assessment):
            raise RuntimeError("bad rule")

    pipeline = TaskPipeline(
        LLMClient(provider=fake_provider_factory("{}")), detector=BrokenDetector()
    )
    result = asyncio.run(pipeline.run("Call mom", "u"))
    assert result.workflow_path == ("started", "failed")
    assert result.confidence == 0.3


def test_complexity_urgency_mismatch(scripted_provider_factory):
    provider = scripted_provider_factory(
        '{"title": "Rebuild the billing system", "complexity": 5, "confidence": 0.9}',
        '{"priority": "urgent", "reasoning": "outage", "confidence": 0.9}',
    )
    result = asyncio.run(_pipeline(provider).run("rebuild billing urgently", "u"))

    mismatch = [r for r in result.risks if r.kind == "priority_complexity_mismatch"]
    assert len(mismatch) == 1
    assert mismatch[0].severity == "high"
    assert result.confidence >= 0.6
    assert result.needs_confirmation is True
    assert MISMATCH_SUGGESTION in result.suggestions
    assert result.suggestions.index(MISMATCH_SUGGESTION) < result.suggestions.index(HIGH_RISK_SUGGESTION)
    assert result.task.metadata.risk_kinds == ["complexity", "priority_complexity_mismatch"]


def test_service_errors_use_stage_fallbacks(raising_provider_factory):
    provider = raising_provider_factory(CompletionServiceError("HTTP 500"))
    result = asyncio.run(_pipeline(provider).run("회의 준비 #긴급 #보고서", "u"))

    assert result.workflow_path == SUCCESS_PATH
    assert set(result.task.tags) == {"긴급", "보고서"}
    assert result.task.priority == "urgent"
    assert result.confidence == pytest.approx(0.7)
    assert result.needs_confirmation is True
    assert result.task.metadata.fallback_stages == ["extracted", "prioritized"]


@pytest.mark.parametrize(
    "response",
    ["", "I cannot help with that.", "{", '{"title": 42, "tags": {"a": 1}}', "[]", "null"],
)
@pytest.mark.parametrize("text", ["x", "Buy milk", "   회의   ", "a" * 500, "#tag only"])
def test_every_input_yields_a_bounded_result(fake_provider_factory, response, text):
    result = asyncio.run(_pipeline(fake_provider_factory(response)).run(text, "u"))
    assert result.task.title
    assert 0.0 <= result.confidence <= 1.0
    if result.confidence < 0.6:
        assert result.needs_confirmation is True


def test_empty_input_still_has_a_title(fake_provider_factory):
    result = asyncio.run(_pipeline(fake_provider_factory("nope")).run("", ""))
    assert result.task.title == "Untitled task"


def test_mock_provider_end_to_end():
    pipeline = TaskPipeline.from_config(PipelineConfig.from_env({"LLM_PROVIDER": "mock"}))
    result = asyncio.run(pipeline.run("urgent: prepare board deck tomorrow #work", "u"))
    assert result.task.priority == "urgent"
    assert result.task.tags == ["work"]
    assert result.task.due_date == (date.today() + timedelta(days=1)).isoformat()
    assert result.needs_confirmation is False


def test_risk_stage_on_a_fixed_state():
    state = PipelineState(input_text="x", user_id="u").advance(
        PipelineStage.PRIORITIZED,
        extraction=ExtractedRecord(
            title="Quarterly audit", complexity=2, estimated_duration_min=300, extraction_confidence=0.8
        ),
        priority=PriorityAssessment(level="medium", assessment_confidence=0.5),
        suggestions=("earlier",),
    )
    pipeline = TaskPipeline(LLMClient(provider=MockProvider()))

    out = asyncio.run(pipeline.risk_stage(state))

    assert [r.kind for r in out.risks] == ["duration"]
    assert out.suggestions[0] == "earlier"
    assert len(out.suggestions) == 2
    assert out.stage_label is PipelineStage.RISK_CHECKED
    assert state.risks == []
