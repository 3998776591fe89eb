# =============================================
# File: kitchen_dss/routers/insights.py
# Purpose: Kitchen snapshot insights over a user's whole order set
# =============================================
from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.models import KitchenInsight, OrderRecord
from kitchen_dss.routers.deps import ModelTarget, UserScoped, get_gateway, get_session_store
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.insights import kitchen_insights
from kitchen_dss.services.sessions import SessionStore
from kitchen_dss.services.tiers import RULE_BASED_SOURCE
from kitchen_dss.utils import slog
from kitchen_dss.utils.metrics import record_precondition_failure

router = APIRouter(tags=["insights"])


class InsightsRequest(UserScoped, ModelTarget):
    """
    - orders: optional snapshot to summarize; defaults to the session's orders.
      Unlike /analyze it does not rebuild the knowledge base.
    """
    orders: Optional[List[OrderRecord]] = None


@router.post("/insights", response_model=KitchenInsight)
async def insights(
    req: InsightsRequest,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    gateway: ModelGateway = Depends(get_gateway),
) -> KitchenInsight:
    request.state.log_context = {"user_id": req.user_id}
    orders = req.orders if req.orders is not None else store.get(req.user_id).snapshot()
    try:
        result = await kitchen_insights(orders, identity=req.identity, base_url=req.base_url, gateway=gateway)
    except EmptyOrderStoreError as e:
        record_precondition_failure()
        request.state.log_context["precondition_failed"] = True
        raise HTTPException(status_code=409, detail=str(e))

    fallback = result.source == RULE_BASED_SOURCE
    slog.insights_completed(req.user_id, result.source, fallback, result.alert is not None, len(orders))
    request.state.log_context.update({"source": result.source, "fallback": fallback})
    return result
