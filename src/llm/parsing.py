"""Locating and decoding the JSON object embedded in free-text model output.

Models often wrap their answer in prose or code fences. The rule is: take
the text from the first ``{`` to the last ``}`` and decode it; if that fails,
fall back to the first balanced ``{...}`` block. Callers get an explicit
``Parsed`` or ``Fallback`` value instead of an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

NO_JSON = "no_json"
INVALID_JSON = "invalid_json"
SCHEMA_MISMATCH = "schema_mismatch"
SERVICE_ERROR = "service_error"


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Fallback:
    reason: str
    error: Exception


ParseOutcome = Union[Parsed[T], Fallback]


def json_candidates(text: str) -> List[str]:
    """Substrings worth decoding, in the order they should be tried."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return []
    candidates = [text[start : end + 1]]
    balanced = _first_balanced(text, start)
    if balanced is not None and balanced != candidates[0]:
        candidates.append(balanced)
    return candidates


def _first_balanced(text: str, start: int) -> Optional[str]:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def decode_json_object(text: Optional[str], error_cls: Type[Exception]) -> ParseOutcome[Dict[str, Any]]:
    candidates = json_candidates(text or "")
    if not candidates:
        return Fallback(NO_JSON, error_cls("no JSON object found in model output"))

    reason = INVALID_JSON
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug("Candidate is not valid JSON (%s): %.200s", e, candidate)
            continue
        if isinstance(data, dict):
            return Parsed(data)
        reason = SCHEMA_MISMATCH

    message = "decoded JSON is not an object" if reason == SCHEMA_MISMATCH else "malformed JSON in model output"
    return Fallback(reason, error_cls(message))


def parse_model_output(
    text: Optional[str], schema: Type[M], error_cls: Type[Exception]
) -> ParseOutcome[M]:
    """Decode the embedded JSON object and validate it against ``schema``."""
    outcome = decode_json_object(text, error_cls)
    if isinstance(outcome, Fallback):
        return outcome
    try:
        return Parsed(schema.model_validate(outcome.value))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return Fallback(SCHEMA_MISMATCH, error_cls(f"schema mismatch: {fields}"))
