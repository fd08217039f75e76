"""
Light clean-up of model output plus heuristic warnings.

Warnings are advisory: they never block or alter an answer.
"""
from __future__ import annotations

import re
from typing import List

from backend.answer_proxy.core.prompts import BANNED_PHRASES

_PREAMBLE_RE = re.compile(
    r"^(?:(?:here's|here is)\s(?:my|the|an?)\s(?:answer|response)|my answer|answer)\s?:\s*",
    re.IGNORECASE,
)
_ROLE_PREAMBLE_RE = re.compile(r"^(?:as the candidate|speaking as the candidate),?\s*", re.IGNORECASE)
_METRIC_RE = re.compile(r"\$\d[\d,]{0,15}|\d{1,6}%|\d{1,3}\s?(?:years|months)")
_QUOTES = "\"'“”‘’"


def polish_answer(text: str) -> str:
    answer = (text or "").strip()
    answer = _PREAMBLE_RE.sub("", answer, count=1)
    answer = _ROLE_PREAMBLE_RE.sub("", answer, count=1)
    if len(answer) >= 2 and answer[0] in _QUOTES and answer[-1] in _QUOTES:
        answer = answer[1:-1]
    # Paragraph breaks matter for cover letters; only tidy runs of spaces.
    answer = re.sub(r"[ \t]{2,}", " ", answer)
    return answer.strip()


def answer_warnings(answer: str, cv_text: str) -> List[str]:
    warnings: List[str] = []

    cv_metrics = set(_METRIC_RE.findall(cv_text or ""))
    for metric in dict.fromkeys(_METRIC_RE.findall(answer or "")):
        if metric not in cv_metrics:
            warnings.append(f'Metric "{metric}" not found in CV - verify accuracy')

    lowered = (answer or "").lower()
    for phrase in BANNED_PHRASES:
        if phrase.lower() in lowered:
            warnings.append(f'Contains AI-sounding phrase "{phrase}"')

    return warnings
