# =============================================
# File: kitchen_dss/services/insights.py
# Purpose: Kitchen snapshot insights (local LLM -> cloud LLM -> deterministic fallback)
# =============================================
from __future__ import annotations
import json
import math
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.models import KitchenInsight, OrderRecord, ProfitabilityAnalysis
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.qa import item_counts
from kitchen_dss.services.tiers import (
    RULE_BASED_SOURCE,
    AnalysisRequest,
    AnalysisTier,
    CloudModelTier,
    LocalModelTier,
    TierResult,
    run_tiers,
)
from kitchen_dss.utils.prompting import COMMISSION_RATE, build_insight_prompt, insight_system

STALE_AFTER_DAYS = 7
STALE_ALERT = "Data is older than 7 days. Please upload new CSV for current insights."
STRONG_NET_REVENUE = 10000.0
DAY_MS = 24 * 60 * 60 * 1000


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass(frozen=True)
class KitchenFigures:
    """Aggregates the snapshot is written from. Computed once, shared by every tier."""
    total_orders: int
    gross_revenue: float
    commission: float
    net_revenue: float
    avg_rating: Optional[float]
    days_since_last_order: int
    top_items: List[str]
    top_item_revenue_share: int

    @property
    def stale(self) -> bool:
        return self.days_since_last_order > STALE_AFTER_DAYS


def kitchen_figures(orders: Sequence[OrderRecord], now_ms: Optional[int] = None) -> KitchenFigures:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    gross = sum(o.total_amount for o in orders)
    commission = gross * COMMISSION_RATE

    rated = [o.rating for o in orders if o.rating is not None]
    avg_rating = math.floor(sum(rated) / len(rated) * 10 + 0.5) / 10 if rated else None

    last = max((o.order_placed_at for o in orders), default=now_ms)
    days = max(0, (now_ms - last) // DAY_MS)

    top_items = [name for name, _ in item_counts(orders)[:5]]
    # share of revenue from orders that contain at least one of the top 3 items
    top3 = set(top_items[:3])
    top_revenue = sum(
        o.total_amount for o in orders
        if top3 & {name for name, _ in item_counts([o])}
    )
    share = _round_half_up(top_revenue / gross * 100) if gross > 0 else 0

    return KitchenFigures(
        total_orders=len(orders),
        gross_revenue=gross,
        commission=commission,
        net_revenue=gross - commission,
        avg_rating=avg_rating,
        days_since_last_order=int(days),
        top_items=top_items,
        top_item_revenue_share=share,
    )


def parse_insight(text: str) -> Optional[KitchenInsight]:
    """
    Model reply -> KitchenInsight, or None when the reply is not the JSON asked for.
    Tolerates code fences and chatter around the object.
    """
    start, end = (text or "").find("{"), (text or "").rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return KitchenInsight.model_validate(json.loads(text[start:end + 1]))
    except (ValueError, ValidationError):
        return None


def _customer_text(avg_rating: Optional[float]) -> str:
    if avg_rating is None:
        return "Insufficient ratings data. Encourage customers to rate orders for better insights."
    r = f"{avg_rating:.1f}/5"
    if avg_rating >= 4.5:
        return f"Excellent rating ({r}). Customers are highly satisfied. Maintain current quality and consider premium offerings."
    if avg_rating >= 4.0:
        return f"Good rating ({r}). Room for improvement. Focus on consistency and faster delivery times."
    if avg_rating >= 3.5:
        return f"Average rating ({r}). Critical feedback on quality or service. Review recent complaints and staff training."
    return f"Low rating ({r}). Urgent action needed. Audit kitchen operations and prioritize quality over volume."


def _demand_text(f: KitchenFigures) -> str:
    if not f.top_items:
        return "Insufficient data for demand forecasting. Upload more records to unlock menu optimization."
    return (
        f"Top performers: {', '.join(f.top_items[:3])}. "
        f"These items appear in orders worth {f.top_item_revenue_share}% of your revenue. "
        "Consider promoting high-margin variants and reducing low-movers from menu."
    )


def _profitability_text(f: KitchenFigures) -> str:
    if f.net_revenue > STRONG_NET_REVENUE:
        return (
            f"Strong profitability: ₹{f.net_revenue:,.0f} net from ₹{f.gross_revenue:,.0f} gross. "
            f"At {f.total_orders} orders, your unit margin is solid. Scale operations to increase absolute profit."
        )
    return (
        f"Tight margins: {COMMISSION_RATE * 100:.0f}% Zomato cut leaves limited room. "
        "Focus on high-margin items and operational efficiency. Consider menu consolidation."
    )


def _profitability(f: KitchenFigures, analysis: str) -> ProfitabilityAnalysis:
    return ProfitabilityAnalysis(
        gross_revenue=f.gross_revenue,
        zomato_commission=f.commission,
        estimated_net=f.net_revenue,
        analysis=analysis,
    )


def local_insight_fallback(figures: KitchenFigures, identity: str = "") -> KitchenInsight:
    """Deterministic snapshot from the figures alone. Never calls a model."""
    return KitchenInsight(
        greeting=f"Welcome back, Chef {identity}. Here's your kitchen snapshot." if identity
        else "Welcome back, Chef. Here's your kitchen snapshot.",
        alert=STALE_ALERT if figures.stale else None,
        demand_forecasting=_demand_text(figures),
        customer_insights=_customer_text(figures.avg_rating),
        profitability_analysis=_profitability(figures, _profitability_text(figures)),
        recommendations=[
            f"Optimize top 3 items: {', '.join(figures.top_items[:3]) or 'Pending data'}",
            f"Target {_round_half_up(figures.total_orders * 1.25)} orders/month via promotions",
            "Monitor ratings weekly; aim for 4.5+ to reduce churn",
        ],
        source=RULE_BASED_SOURCE,
        ai_enhanced=False,
    )


class InsightFallbackTier:
    """Last tier of the insight chain. Always succeeds."""
    name = "rule-based"

    def __init__(self, figures: KitchenFigures) -> None:
        self.figures = figures

    async def run(self, request: AnalysisRequest) -> TierResult:
        insight = local_insight_fallback(self.figures, request.identity)
        return TierResult(tier=self.name, ok=True, text=insight.model_dump_json(), source=RULE_BASED_SOURCE)


def _finalize(insight: KitchenInsight, figures: KitchenFigures, source: str) -> KitchenInsight:
    # the figures are ours; only the model's commentary is kept
    alert = (insight.alert or STALE_ALERT) if figures.stale else None
    return insight.model_copy(update={
        "alert": alert,
        "profitability_analysis": _profitability(figures, insight.profitability_analysis.analysis),
        "source": source,
        "ai_enhanced": source != RULE_BASED_SOURCE,
    })


async def kitchen_insights(
    orders: Sequence[OrderRecord],
    identity: str = "",
    base_url: Optional[str] = None,
    gateway: Optional[ModelGateway] = None,
    cloud: Optional[CloudModelTier] = None,
    now_ms: Optional[int] = None,
) -> KitchenInsight:
    """
    Snapshot of the whole order set for the dashboard.

    Raises EmptyOrderStoreError when there are no orders. Model replies that
    are not valid insight JSON count as a failed tier, so the chain always
    ends in `local_insight_fallback`.
    """
    if not orders:
        raise EmptyOrderStoreError()

    figures = kitchen_figures(orders, now_ms)
    prompt = build_insight_prompt(
        identity,
        figures.gross_revenue,
        figures.total_orders,
        figures.avg_rating,
        figures.top_items,
        figures.days_since_last_order,
        STALE_AFTER_DAYS,
    )
    request = AnalysisRequest(
        query="kitchen insights",
        identity=identity,
        base_url=base_url,
        context="",
        prompt=prompt,
        system=insight_system(identity),
    )
    tiers: List[AnalysisTier] = [
        LocalModelTier(gateway),
        cloud or CloudModelTier(),
        InsightFallbackTier(figures),
    ]
    result, failures = await run_tiers(tiers, request, accept=lambda t: parse_insight(t) is not None)

    parsed = parse_insight(result.text)
    if parsed is None:
        parsed = local_insight_fallback(figures, identity)
        result = TierResult(tier=InsightFallbackTier.name, ok=True, source=RULE_BASED_SOURCE)

    logger.info(
        f"[insights] {result.tier} answered after {len(failures)} failed tier(s); "
        f"orders={figures.total_orders} stale={figures.stale}"
    )
    return _finalize(parsed, figures, result.source)
