# =============================================
# File: kitchen_dss/routers/knowledge_base.py
# Purpose: Build / inspect / reset / query a user's order knowledge base
# =============================================
from __future__ import annotations
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from kitchen_dss.models import OrderRecord
from kitchen_dss.routers.deps import QueryText, UserScoped, get_session_store
from kitchen_dss.services.sessions import SessionStore
from kitchen_dss.utils import slog

router = APIRouter(prefix="/knowledge-base", tags=["knowledge-base"])


class BuildRequest(UserScoped):
    orders: List[OrderRecord]


class RetrieveRequest(QueryText):
    top_k: int = Field(5, ge=1, le=50)


class RetrieveResponse(BaseModel):
    orders: List[OrderRecord]


@router.post("")
def build_knowledge_base(
    req: BuildRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    """Replace the user's order snapshot and rebuild its embeddings. Sync: runs in the threadpool."""
    request.state.log_context = {"user_id": req.user_id, "orders": len(req.orders)}
    return store.get(req.user_id).load(req.orders)


@router.get("/stats")
def knowledge_base_stats(
    user_id: str = Query(..., min_length=1, max_length=128),
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    return store.get(user_id).stats()


@router.delete("")
def reset_knowledge_base(
    user_id: str = Query(..., min_length=1, max_length=128),
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    existed = store.drop(user_id)
    return {"user_id": user_id, "reset": existed}


@router.post("/retrieve", response_model=RetrieveResponse)
def retrieve(
    req: RetrieveRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> RetrieveResponse:
    request.state.log_context = {"user_id": req.user_id, "qhash": slog.qhash(req.query), "top_k": req.top_k}
    return RetrieveResponse(orders=store.get(req.user_id).retrieve(req.query, req.top_k))
