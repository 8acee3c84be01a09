import pytest

from llm.parsing import (
    INVALID_JSON,
    NO_JSON,
    SCHEMA_MISMATCH,
    Fallback,
    Parsed,
    decode_json_object,
    json_candidates,
    parse_model_output,
)
from llm.schemas import ExtractionPayload, PriorityPayload
from taskflow_ai.errors import AnalysisParseError, ExtractionParseError


def test_prose_around_json_is_ignored():
    out = decode_json_object('Here you go: {"title": "Call mom"} Hope that helps!', ExtractionParseError)
    assert out == Parsed({"title": "Call mom"})


def test_code_fence_is_ignored():
    text = '```json\n{"priority": "high"}\n```'
    assert decode_json_object(text, AnalysisParseError) == Parsed({"priority": "high"})


def test_no_braces_is_no_json():
    out = decode_json_object("I could not do that.", ExtractionParseError)
    assert isinstance(out, Fallback)
    assert out.reason == NO_JSON
    assert isinstance(out.error, ExtractionParseError)


def test_empty_output_is_no_json():
    assert decode_json_object(None, ExtractionParseError).reason == NO_JSON


def test_malformed_json_is_invalid():
    out = decode_json_object('{"title": "x",}', ExtractionParseError)
    assert isinstance(out, Fallback)
    assert out.reason == INVALID_JSON


def test_first_balanced_block_is_tried_after_outer_span():
    text = '{"title": "a"} and also {"title": "b"}'
    assert json_candidates(text) == [text, '{"title": "a"}']
    assert decode_json_object(text, ExtractionParseError) == Parsed({"title": "a"})


def test_braces_inside_strings_do_not_end_the_block():
    text = '{"title": "use } carefully"} trailing }'
    assert decode_json_object(text, ExtractionParseError) == Parsed({"title": "use } carefully"})


def test_extraction_payload_accepts_camel_and_snake_case():
    out = parse_model_output(
        '{"title": " Report ", "dueDate": "2030-01-02", "estimated_duration": "90 minutes",'
        ' "tags": "work, report", "complexity": 9, "confidence": 85}',
        ExtractionPayload,
        ExtractionParseError,
    )
    assert isinstance(out, Parsed)
    p = out.value
    assert p.title == "Report"
    assert p.due_date == "2030-01-02"
    assert p.estimated_duration == 90
    assert p.tags == ["work", "report"]
    assert p.complexity == 5
    assert p.confidence == 0.85


def test_extraction_payload_nullish_text_becomes_none():
    out = parse_model_output('{"title": "x", "dueDate": "null"}', ExtractionPayload, ExtractionParseError)
    assert out.value.due_date is None


def test_extraction_payload_wrong_shape_is_schema_mismatch():
    out = parse_model_output('{"title": ["a", "b"]}', ExtractionPayload, ExtractionParseError)
    assert isinstance(out, Fallback)
    assert out.reason == SCHEMA_MISMATCH
    assert "title" in str(out.error)


def test_priority_payload_normalizes_level():
    out = parse_model_output(
        '{"priority": "HIGH", "riskLevel": "extreme", "reasoning": null}',
        PriorityPayload,
        AnalysisParseError,
    )
    assert out.value.priority == "high"
    assert out.value.risk_level == "medium"
    assert out.value.reasoning == ""
    assert out.value.confidence is None


def test_priority_payload_synonyms():
    out = parse_model_output('{"priority": "critical"}', PriorityPayload, AnalysisParseError)
    assert out.value.priority == "urgent"


def test_priority_payload_unknown_level_is_schema_mismatch():
    out = parse_model_output('{"priority": "whenever"}', PriorityPayload, AnalysisParseError)
    assert isinstance(out, Fallback)
    assert out.reason == SCHEMA_MISMATCH


def test_object_inside_array_is_found():
    out = decode_json_object('[{"a": 1}]', ExtractionParseError)
    assert isinstance(out, Parsed)
    assert out.value == {"a": 1}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.5", 1.0),
        ('"85%"', 0.85),
        ('"0.7"', 0.7),
        ("85", 0.85),
        ("-0.2", 0.0),
    ],
)
def test_confidence_is_capped_unless_it_is_a_percentage(raw, expected):
    out = parse_model_output(
        '{"title": "Write quarterly report", "confidence": %s}' % raw,
        ExtractionPayload,
        ExtractionParseError,
    )
    assert out.value.confidence == pytest.approx(expected)
