# =============================================
# File: kitchen_dss/routers/analyze.py
# Purpose: Decision-support analysis and quick Q&A over a user's orders
# =============================================
from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, field_validator

from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.models import DSSAnalysis, OrderRecord
from kitchen_dss.routers.deps import ModelTarget, QueryText, UserScoped, get_gateway, get_session_store
from kitchen_dss.services import qa
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.sessions import SessionStore
from kitchen_dss.services.tiers import RULE_BASED_SOURCE
from kitchen_dss.utils import slog
from kitchen_dss.utils.metrics import record_analysis, record_precondition_failure
from kitchen_dss.utils.timing import stage_timer

router = APIRouter(tags=["analyze"])


class AnalyzeRequest(QueryText, ModelTarget):
    """
    - query: the manager's question (3..500 chars, trimmed).
    - identity: name used in the prompt persona.
    - base_url: local model server; defaults to DSS_BASE_URL.
    - orders: optional new snapshot; replaces the session's orders before analysis.
    """
    orders: Optional[List[OrderRecord]] = None


class AskRequest(UserScoped, ModelTarget):
    question: str = Field(..., min_length=3, max_length=500)

    @field_validator("question")
    @classmethod
    def _trim_question(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 3:
            raise ValueError("question must have at least 3 non-blank characters")
        return v


class AskResponse(BaseModel):
    answer: str
    source: str


@router.post("/analyze", response_model=DSSAnalysis)
async def analyze(
    req: AnalyzeRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> DSSAnalysis:
    request.state.log_context = {"user_id": req.user_id, "qhash": slog.qhash(req.query)}
    session = store.get(req.user_id)
    if req.orders is not None:
        await run_in_threadpool(session.load, req.orders)

    with stage_timer() as elapsed_ms:
        try:
            result = await session.analyze(req.query, identity=req.identity, base_url=req.base_url)
        except EmptyOrderStoreError as e:
            record_precondition_failure()
            request.state.log_context["precondition_failed"] = True
            raise HTTPException(status_code=409, detail=str(e))

        analysis_ms = elapsed_ms()
        record_analysis(result.source, fallback=not result.ai_enhanced)
        slog.analysis_completed(req.user_id, result, analysis_ms)
        request.state.log_context.update({
            "source": result.source,
            "fallback": not result.ai_enhanced,
            "similar_orders": len(result.similar_orders),
            "analysis_ms": analysis_ms,
        })
    return result


@router.post("/ask", response_model=AskResponse)
async def ask(
    req: AskRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    gateway: ModelGateway = Depends(get_gateway),
) -> AskResponse:
    request.state.log_context = {"user_id": req.user_id, "qhash": slog.qhash(req.question)}
    session = store.get(req.user_id)
    out = await qa.ask(req.question, session.orders, req.identity, req.base_url, gateway=gateway)
    request.state.log_context.update({"source": out["source"], "fallback": out["source"] == RULE_BASED_SOURCE})
    return AskResponse(**out)
