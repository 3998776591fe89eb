# =============================================
# File: kitchen_dss/routers/metrics.py
# Purpose: Expose internal service metrics as JSON
# =============================================
from __future__ import annotations
from fastapi import APIRouter
from kitchen_dss.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def get_metrics():
    """Return in-process metrics (JSON): request counts, tier usage, latency histogram."""
    return snapshot()
