# =============================================
# File: kitchen_dss/utils/parsing.py
# Purpose: Turn free-form model text into structured recommendations
# =============================================
from __future__ import annotations
import re
from typing import List, Optional

from kitchen_dss.models import Recommendation

CATEGORIES = ["Demand", "Revenue", "Quality", "Operations", "Menu", "Delivery", "Customer"]
DEFAULT_CATEGORY = "Strategy"
GENERAL_CATEGORY = "General"

MAX_INSIGHT_CHARS = 150
MAX_ACTION_ITEMS = 5
MAX_SENTENCE_RECS = 3
MIN_INSIGHT_WORDS = 2  # "- Yes", "- N/A" carry no recommendation

_ENUM_RE = re.compile(r"^(\d+\.|[-*•>+])\s+")
_NUMBERED_RE = re.compile(r"^\d+\.\s+")
_BOLD_LINE_RE = re.compile(r"^\*\*(.+?)\*\*:?$")
_HEADING_RE = re.compile(r"^(#{1,6}\s+.+|[A-Z][A-Z0-9 &/()'%,.\-]*:)$")
_RULE_RE = re.compile(r"^[-=_━─*]{3,}$")
_PCT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_FIGURE_RE = re.compile(r"\d+(?:[.,]\d+)?")
_SENTENCE_END_RE = re.compile(r"[.!?]+")


def extract_category(text: str) -> str:
    low = (text or "").lower()
    for cat in CATEGORIES:
        if cat.lower() in low:
            return cat
    return DEFAULT_CATEGORY


def confidence_for(insight: str, action_items: List[str]) -> float:
    """
    Explicit "NN%" on the insight wins (capped at 0.99). Otherwise score the
    amount of numeric evidence: 0.70 plus 0.04 per cited figure, max 0.90.
    """
    m = _PCT_RE.search(insight or "")
    if m:
        return min(float(m.group(1)) / 100, 0.99)
    figures = len(_FIGURE_RE.findall(" ".join([insight or ""] + list(action_items))))
    return round(min(0.70 + 0.04 * figures, 0.90), 2)


def _truncate(text: str, limit: int = MAX_INSIGHT_CHARS) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _clean(text: str) -> str:
    return text.replace("**", "").strip()


class _Draft:
    def __init__(self, insight: str, numbered: bool) -> None:
        self.insight = insight
        self.numbered = numbered
        self.actions: List[str] = []

    def build(self) -> Recommendation:
        actions = self.actions[:MAX_ACTION_ITEMS]
        return Recommendation(
            category=extract_category(self.insight),
            insight=_truncate(self.insight),
            action_items=actions,
            confidence_score=confidence_for(self.insight, actions),
        )


def _enumerated(text: str) -> List[Recommendation]:
    recs: List[Recommendation] = []
    current: Optional[_Draft] = None

    def close() -> None:
        nonlocal current
        if current is not None and current.insight:
            recs.append(current.build())
        current = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        bold = _BOLD_LINE_RE.match(line)
        if bold and not _ENUM_RE.match(bold.group(1).strip()):
            close()  # "**Heading**"
            continue
        if bold:
            line = bold.group(1).strip()  # "**1. Item**"

        if _RULE_RE.match(line) or _HEADING_RE.match(line):
            close()
            continue

        m = _ENUM_RE.match(line)
        indented = len(raw) - len(raw.lstrip()) > 0
        if m and indented and current is not None and current.numbered and not _NUMBERED_RE.match(line):
            # "   - step" under "1. Recommendation" is an action item
            current.actions.append(_clean(line[m.end():]))
            continue
        if m:
            close()
            insight = _clean(line[m.end():])
            if len(insight.split()) >= MIN_INSIGHT_WORDS:
                current = _Draft(insight, numbered=bool(_NUMBERED_RE.match(line)))
            continue

        if current is not None:
            current.actions.append(_clean(line))

    close()
    return recs


def _from_sentences(text: str) -> List[Recommendation]:
    sentences = [s.strip() for s in _SENTENCE_END_RE.split(text or "") if len(s.strip()) > 20]
    return [
        Recommendation(
            category=extract_category(s),
            insight=s[:MAX_INSIGHT_CHARS],
            action_items=["Monitor metrics", "Implement changes", "Track results"],
            confidence_score=0.72,
        )
        for s in sentences[:MAX_SENTENCE_RECS]
    ]


def parse_recommendations(text: str) -> List[Recommendation]:
    """
    Parse model output into recommendations. Never raises and never returns
    an empty list: enumerated items first, then sentences, then a single
    General echo of the input.
    """
    text = text or ""
    recs = _enumerated(text)
    if recs:
        return recs
    recs = _from_sentences(text)
    if recs:
        return recs
    return [
        Recommendation(
            category=GENERAL_CATEGORY,
            insight=text.strip()[:100],
            action_items=["Analyze data", "Plan implementation", "Monitor impact"],
            confidence_score=0.65,
        )
    ]
