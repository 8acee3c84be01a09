"""Keyword and regex heuristics used when the model output cannot be used."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

TAG_RE = re.compile(r"#(\w+)")

DATE_MENTION_RE = re.compile(
    r"\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{4}\.\s?\d{1,2}\.\s?\d{1,2}"
    r"|\d{1,2}/\d{1,2}/\d{4}"
    r"|\d{1,2}월\s*\d{1,2}일"
    r"|내일\s?모레|모레|내일|오늘|다음\s?주"
    r"|\b(?:day after tomorrow|tomorrow|today|next week)\b",
    re.IGNORECASE,
)

RELATIVE_DAYS = {
    "오늘": 0,
    "today": 0,
    "내일": 1,
    "tomorrow": 1,
    "모레": 2,
    "내일모레": 2,
    "day after tomorrow": 2,
    "다음주": 7,
    "next week": 7,
}

URGENT_KEYWORDS = ("urgent", "asap", "emergency", "critical", "긴급", "즉시", "당장", "급히")
HIGH_KEYWORDS = ("important", "must", "need to", "required", "중요", "해야", "필수")
LOW_KEYWORDS = (
    "when possible",
    "eventually",
    "sometime",
    "later",
    "나중에",
    "시간될때",
    "시간 될 때",
    "여유있을때",
)

# first matching bucket wins, in this order
PRIORITY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("urgent", URGENT_KEYWORDS),
    ("high", HIGH_KEYWORDS),
    ("low", LOW_KEYWORDS),
)


def find_tags(text: str) -> List[str]:
    tags: List[str] = []
    for tag in TAG_RE.findall(text or ""):
        if tag not in tags:
            tags.append(tag)
    return tags


def find_date_mentions(text: str) -> List[str]:
    return [m.group(0) for m in DATE_MENTION_RE.finditer(text or "")]


def _keyword_re(keyword: str) -> "re.Pattern[str]":
    # whole words for ASCII keywords; Hangul keywords match as substrings
    if keyword.isascii():
        return re.compile(r"\b" + re.escape(keyword) + r"\b")
    return re.compile(re.escape(keyword))


KEYWORD_RES = {
    k: _keyword_re(k) for k in (*URGENT_KEYWORDS, *HIGH_KEYWORDS, *LOW_KEYWORDS)
}


def _has_keyword(keyword: str, lower: str) -> bool:
    return KEYWORD_RES[keyword].search(lower) is not None


def find_urgency_indicators(text: str) -> List[str]:
    lower = (text or "").lower()
    return [k for k in URGENT_KEYWORDS if _has_keyword(k, lower)]


def keyword_priority(text: str) -> Tuple[str, Optional[str]]:
    """Priority bucket for ``text`` and the keyword that decided it."""
    lower = (text or "").lower()
    for level, keywords in PRIORITY_KEYWORDS:
        for keyword in keywords:
            if _has_keyword(keyword, lower):
                return level, keyword
    return "medium", None


def resolve_date_mention(mention: str, today: Optional[date] = None) -> Optional[str]:
    """Turn one date literal or relative keyword into an ISO date."""
    today = today or date.today()
    key = mention.strip().lower()
    compact = re.sub(r"\s+", "", key)

    for word, offset in RELATIVE_DAYS.items():
        if key == word or compact == word.replace(" ", ""):
            return (today + timedelta(days=offset)).isoformat()

    m = re.fullmatch(r"(\d{4})[-.](\d{1,2})[-.](\d{1,2})", compact)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", compact)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))

    m = re.fullmatch(r"(\d{1,2})월(\d{1,2})일", compact)
    if m:
        month, day = int(m.group(1)), int(m.group(2))
        # next occurrence; Feb 29 may be up to eight years away
        for year in range(today.year, today.year + 9):
            resolved = _safe_date(year, month, day)
            if resolved and resolved >= today.isoformat():
                return resolved
        return None

    return None


def resolve_due_date(text: str, today: Optional[date] = None) -> Optional[str]:
    for mention in find_date_mentions(text):
        resolved = resolve_date_mention(mention, today)
        if resolved:
            return resolved
    return None


def normalize_due_date(value: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """ISO date for a model-reported due date, or None when it cannot be read."""
    if not value:
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass
    return resolve_date_mention(text, today) or resolve_due_date(text, today)


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None
