from __future__ import annotations
import json
import re
from datetime import date, timedelta
from typing import Optional

from .base import LLMProvider

_INPUT_RE = re.compile(r'^Input: "(?P<text>.*)"$', re.MULTILINE)
_TITLE_RE = re.compile(r"^Title: (?P<text>.*)$", re.MULTILINE)


class MockProvider(LLMProvider):
    """Offline provider returning canned JSON for the two pipeline prompts."""

    name = "mock"

    async def generate(self, *, system: str, user: str, model: Optional[str] = None) -> str:
        # Check if it's an extraction request (look for keywords in user prompt)
        if "Extract task information" in user:
            m = _INPUT_RE.search(user)
            text = m.group("text") if m else user
            lower = text.lower()
            due = None
            if "tomorrow" in lower or "내일" in text:
                due = (date.today() + timedelta(days=1)).isoformat()
            return json.dumps({
                "title": text[:50],
                "description": text if len(text) > 50 else None,
                "dueDate": due,
                "tags": re.findall(r"#(\w+)", text),
                "entities": {"people": [], "places": [], "organizations": [], "dates": []},
                "urgencyKeywords": [w for w in ("urgent", "asap", "긴급") if w in lower],
                "estimatedDuration": 60,
                "complexity": 2,
                "confidence": 0.8,
            }, ensure_ascii=False)

        # Check if it's a priority request
        if "Analyze task priority" in user:
            m = _TITLE_RE.search(user)
            lower = (m.group("text") if m else user).lower()
            priority = "medium"
            if "urgent" in lower or "asap" in lower or "긴급" in lower:
                priority = "urgent"
            elif "important" in lower or "중요" in lower:
                priority = "high"
            return json.dumps({
                "priority": priority,
                "reasoning": "mock keyword match",
                "riskLevel": "low",
                "confidence": 0.7,
            })

        # Default fallback
        return "{}"
