# =============================================
# File: kitchen_dss/routers/orders.py
# Purpose: Business dashboards computed from an order snapshot
# =============================================
from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kitchen_dss.models import OrderRecord
from kitchen_dss.routers.deps import get_session_store
from kitchen_dss.services.business_metrics import full_report
from kitchen_dss.services.sessions import SessionStore

router = APIRouter(prefix="/orders", tags=["orders"])


class MetricsRequest(BaseModel):
    """Either pass `orders` directly or a `user_id` whose session snapshot is used."""
    user_id: Optional[str] = Field(None, min_length=1, max_length=128)
    orders: Optional[List[OrderRecord]] = None


@router.post("/metrics")
def order_metrics(req: MetricsRequest, store: SessionStore = Depends(get_session_store)) -> Dict[str, Any]:
    if req.orders is not None:
        orders = req.orders
    elif req.user_id:
        orders = store.get(req.user_id).orders
    else:
        orders = []
    return full_report(orders)
