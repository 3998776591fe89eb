# =============================================
# File: kitchen_dss/utils/sanitize.py
# Purpose: Neutralize free-text order fields before they reach a prompt; validate endpoint URLs
# =============================================
from __future__ import annotations
import re
from typing import Iterable

_ALLOWED_SCHEMES = ("http://", "https://")
_INJECTION_CUES = [
    "ignore previous instruction",
    "ignore the previous instruction",
    "disregard previous instruction",
    "system prompt",
    "developer message",
    "as an ai",
    "act as",
    "do not follow the above",
    "override",
    "reset the system",
    "jailbreak",
]

_WHITESPACE_RE = re.compile(r"\s+")
_SENT_SPLIT_RE = re.compile(r'(?<=[.!?])\s+')


def safe_url(url: str) -> str:
    """Return the URL without a trailing slash if it is http(s), else ''."""
    if not url:
        return ""
    u = url.strip()
    if any(u.lower().startswith(s) for s in _ALLOWED_SCHEMES) and len(u) > len("https://"):
        return u.rstrip("/")
    return ""


def collapse_ws(text: str) -> str:
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_injection_lines(text: str, cues: Iterable[str] = _INJECTION_CUES) -> str:
    if not text:
        return ""
    cues_l = [c.lower() for c in cues]
    kept = [ln for ln in text.splitlines() if not any(c in ln.lower() for c in cues_l)]
    return "\n".join(kept)


def _strip_injection_sentences(text: str, cues: Iterable[str] = _INJECTION_CUES) -> str:
    if not text:
        return ""
    parts = _SENT_SPLIT_RE.split(text)
    cues_l = [c.lower() for c in cues]
    kept = [p.strip() for p in parts if p.strip() and not any(c in p.lower() for c in cues_l)]
    if kept:
        return " ".join(kept)
    # everything matched; the inline pass below still removes the cues
    return text


def sanitize_field(text: str, max_chars: int = 120) -> str:
    """
    Prepare a CSV-sourced value (restaurant, items, city) for prompt context:
    drop injection-looking sentences, strip cue phrases inline, collapse
    whitespace, then truncate.
    """
    t = _strip_injection_sentences(str(text or ""))
    for c in _INJECTION_CUES:
        t = re.sub(re.escape(c), "", t, flags=re.IGNORECASE)
    t = collapse_ws(t)
    if max_chars and len(t) > max_chars:
        t = t[:max_chars].rstrip() + "…"
    return t
