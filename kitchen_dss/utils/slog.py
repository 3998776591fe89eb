# =============================================
# File: kitchen_dss/utils/slog.py
# Purpose: JSON event log for the DSS: request lines plus knowledge-base and analysis events
# =============================================
from __future__ import annotations
import hashlib
import json
import logging
import os
import uuid
from typing import Any, Dict, Optional

_logger = logging.getLogger("kitchen_dss")
if not _logger.handlers:
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.propagate = True  # pytest caplog


def qhash(text: str) -> str:
    """Short hash of a normalized query, so raw queries never reach the logs."""
    norm = " ".join((text or "").strip().lower().split())
    return hashlib.sha256(norm.encode("utf-8")).hexdigest()[:10]


def new_request_id() -> str:
    return uuid.uuid4().hex


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    _logger.log(level, json.dumps({"event": event, **fields}, ensure_ascii=False, default=str))


# ---------------------------------------------------------------------
# HTTP layer
# ---------------------------------------------------------------------

def request_completed(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: Optional[str],
    ctx: Optional[Dict[str, Any]] = None,
) -> None:
    """One line per response. `ctx` is what the router put on request.state.log_context."""
    payload: Dict[str, Any] = {
        "request_id": request_id,
        "method": method,
        "path": path,
        "status": status,
        "latency_ms": latency_ms,
        "client_ip": client_ip or "",
    }
    payload.update(ctx or {})
    log_event("request.completed", logging.WARNING if status >= 500 else logging.INFO, **payload)


def request_failed(
    request_id: str,
    method: str,
    path: str,
    latency_ms: int,
    client_ip: Optional[str],
    error: BaseException,
    ctx: Optional[Dict[str, Any]] = None,
) -> None:
    payload: Dict[str, Any] = {
        "request_id": request_id,
        "method": method,
        "path": path,
        "latency_ms": latency_ms,
        "client_ip": client_ip or "",
        "error": f"{error.__class__.__name__}: {error}",
    }
    payload.update(ctx or {})
    log_event("request.error", logging.ERROR, **payload)


# ---------------------------------------------------------------------
# DSS events
# ---------------------------------------------------------------------

def kb_built(user_id: str, orders: int, stats: Dict[str, Any], build_ms: int) -> None:
    log_event(
        "kb.built",
        user_id=user_id,
        orders=orders,
        embeddings=stats.get("embeddings_count", 0),
        skipped=orders - stats.get("embeddings_count", 0),
        backend=stats.get("backend"),
        build_ms=build_ms,
    )


def kb_reset(user_id: str) -> None:
    log_event("kb.reset", user_id=user_id)


def analysis_completed(user_id: str, analysis: Any, analysis_ms: int) -> None:
    """`analysis` is a DSSAnalysis; only counts and tier labels are logged, never order data."""
    log_event(
        "analysis.completed",
        user_id=user_id,
        qhash=qhash(analysis.query),
        tier=analysis.tier,
        source=analysis.source,
        fallback=not analysis.ai_enhanced,
        topic=analysis.topic,
        similar_orders=len(analysis.similar_orders),
        recommendations=len(analysis.recommendations),
        analysis_ms=analysis_ms,
    )


def insights_completed(user_id: str, source: str, fallback: bool, stale: bool, orders: int) -> None:
    log_event("insights.completed", user_id=user_id, source=source, fallback=fallback, stale=stale, orders=orders)
