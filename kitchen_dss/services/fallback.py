# =============================================
# File: kitchen_dss/services/fallback.py
# Purpose: Deterministic keyword-routed analysis used when no model answers
# =============================================
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from kitchen_dss.models import OrderRecord

# First match wins; order matters.
TOPIC_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("ratings", ("rating", "customer", "satisfaction")),
    ("rejections", ("rejection", "fail", "issue")),
    ("menu", ("menu", "item", "popular")),
    ("revenue", ("revenue", "profit", "margin")),
    ("demand", ("time", "peak", "demand", "trend")),
    ("operations", ("operation", "improve", "strategy")),
]
DEFAULT_TOPIC = "general"

DISCLOSURE = """---
ℹ️ NOTE: Enhanced local analysis (non-AI, deterministic rules; no language model was reachable).
For AI-powered insights, start Ollama:
   Download: https://ollama.ai
   Run: ollama pull llama3.2 && ollama serve
   Then try the query again"""


def route_topic(query: str) -> str:
    q = (query or "").lower()
    for topic, words in TOPIC_KEYWORDS:
        if any(w in q for w in words):
            return topic
    return DEFAULT_TOPIC


@dataclass(frozen=True)
class SimilarStats:
    count: int
    avg_rating: str
    completed: int
    rejected: int
    completion_rate: float
    rejection_rate: float
    avg_value: float
    total_revenue: float
    top_restaurant: str
    top_items: str


def similar_stats(orders: Sequence[OrderRecord]) -> SimilarStats:
    n = len(orders)
    rated = [o.rating for o in orders if o.rating]
    completed = sum(1 for o in orders if o.order_status == "Completed")
    rejected = sum(1 for o in orders if o.order_status == "Rejected")
    total = sum(o.total_amount for o in orders)
    first = orders[0] if n else None
    return SimilarStats(
        count=n,
        avg_rating=f"{sum(rated) / len(rated):.1f}" if rated else "N/A",
        completed=completed,
        rejected=rejected,
        completion_rate=(completed / n) * 100 if n else 0.0,
        rejection_rate=(rejected / n) * 100 if n else 0.0,
        avg_value=total / n if n else 0.0,
        total_revenue=total,
        top_restaurant=(first.restaurant_name if first and first.restaurant_name else "N/A"),
        top_items=(first.items if first and first.items else ""),
    )


# ---------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------

def _ratings(s: SimilarStats) -> str:
    reputation = (
        f"{s.rejection_rate:.0f}% rejection rate affecting perception"
        if s.rejected > 0 else "Strong completion track record"
    )
    return f"""INSIGHTS ON CUSTOMER RATINGS:
- Current avg rating from similar orders: {s.avg_rating}/5
- {reputation}
- Customer satisfaction depends on: timeliness, food quality, accuracy of order

RECOMMENDATIONS:
1. Focus on completing ALL orders (75%+ should be at minimum)
2. Ensure food temperature maintained during delivery
3. Double-check order accuracy before dispatch
4. Get customer feedback for sub-4.0 rated orders
5. For {s.top_restaurant}: maintain quality consistency"""


def _rejections(s: SimilarStats) -> str:
    severity = (
        "Critical: Over 40% rejection rate needs immediate investigation"
        if s.completion_rate < 60 else "Acceptable rejection rate"
    )
    cost = (s.rejected / s.count) * s.total_revenue if s.count else 0.0
    return f"""INSIGHTS ON ORDER REJECTIONS:
- {s.rejected} out of {s.count} orders rejected ({s.rejection_rate:.0f}%)
- Rejection cost: ₹{cost:.0f} from these similar orders
- {severity}

RECOMMENDATIONS:
1. Identify common rejection reasons (customer unavailable, payment issues, etc.)
2. For {s.top_restaurant}: check if quality/delivery time is the rejection driver
3. Pre-order verification call to reduce prep-waste rejections
4. Offer time-window flexibility to reduce unavailability rejections
5. Monitor next 50 orders to track rejection rate improvement"""


def _menu(s: SimilarStats) -> str:
    return f"""INSIGHTS ON MENU PERFORMANCE:
- Revenue per order: ₹{s.avg_value:.0f} average
- {s.top_items or 'Multiple items'} appears in similar orders
- High-value items: Focus on combos and multi-item orders

RECOMMENDATIONS:
1. Bundle popular items from {s.top_restaurant} into combo offers
2. Promote higher-value menu items (current avg order ₹{s.avg_value:.0f})
3. Reduce low-margin single items
4. Create tier-based pricing: value, regular, premium
5. A/B test 2-3 new items with similar order patterns"""


def _revenue(s: SimilarStats) -> str:
    completion_note = (
        "Fix rejections first - they kill profit"
        if s.completed < s.count * 0.8 else "Good completion rate - scale up"
    )
    return f"""INSIGHTS ON REVENUE & PROFITABILITY:
- Revenue from similar orders: ₹{s.total_revenue:.0f}
- Avg per order: ₹{s.avg_value:.0f}
- Zomato commission (est 35%): ₹{s.total_revenue * 0.35:.0f}
- Net margin (est 65%): ₹{s.total_revenue * 0.65:.0f}
- Volume × Margin = Your profit target

RECOMMENDATIONS:
1. Increase order volume by 20% through promotions (target revenue ₹{s.total_revenue * 1.2:.0f})
2. Reduce Zomato dependency: build direct orders
3. Focus on high-margin items (₹300+ orders only)
4. {completion_note}
5. Negotiate better commission rates at ₹{s.total_revenue:.0f}+ monthly revenue"""


def _demand(s: SimilarStats) -> str:
    return f"""INSIGHTS ON DEMAND PATTERNS:
- Similar orders average value: ₹{s.avg_value:.0f}
- Completion consistency: {s.completion_rate:.0f}%
- Order distribution: {s.completed} completed, {s.rejected} rejected

RECOMMENDATIONS:
1. Analyze peak hours from order timestamps to forecast demand
2. Staff appropriately for high-demand periods
3. Pre-position inventory for top 3 items
4. Offer time-based discounts in low-demand hours
5. Monitor if specific times have higher rejection rates"""


def _operations(s: SimilarStats) -> str:
    scale_note = (
        "Scale confidently to handle 50% more volume"
        if s.completion_rate > 80 else "First fix operational issues (>20% rejection)"
    )
    return f"""OPERATIONAL INSIGHTS:
- Processing {s.count} similar orders
- Success rate: {s.completion_rate:.0f}%
- Average order complexity: {s.top_items or 'standard items'}

RECOMMENDATIONS:
1. Standardize operations for top 5 items
2. {scale_note}
3. Implement order pre-check system
4. Cross-train team on high-value items
5. Daily operations review: orders per hour, rejection reasons"""


def _general(s: SimilarStats) -> str:
    return f"""GENERAL BUSINESS RECOMMENDATIONS:
- Top performing: {s.top_restaurant}
- Average order value: ₹{s.avg_value:.0f}
- Success rate: {s.completion_rate:.0f}%
- Customer satisfaction: {s.avg_rating}/5

RECOMMENDATIONS:
1. Scale orders: Target 50% volume increase
2. Optimize menu based on ₹{s.avg_value:.0f} avg order value
3. Reduce rejections (<15% target)
4. Maintain 4.5+ star rating
5. Monthly review of metrics against these benchmarks"""


_TEMPLATES: Dict[str, Callable[[SimilarStats], str]] = {
    "ratings": _ratings,
    "rejections": _rejections,
    "menu": _menu,
    "revenue": _revenue,
    "demand": _demand,
    "operations": _operations,
    "general": _general,
}


def local_analysis(similar_orders: Sequence[OrderRecord], query: str, identity: str = "") -> str:
    """
    Rule-based stand-in for the model. Pure: the same inputs always give the
    same text. Statistics come from the retrieved orders only.
    """
    s = similar_stats(list(similar_orders))
    topic = route_topic(query)
    header = f"""DSS ANALYSIS FOR: "{query}"{f' (prepared for {identity})' if identity else ''}

DATA FROM {s.count} SIMILAR ORDERS:
- Average Rating: {s.avg_rating}/5
- Completion Rate: {s.completion_rate:.0f}% ({s.completed}/{s.count})
- Avg Order Value: ₹{s.avg_value:.0f}
- Total Revenue: ₹{s.total_revenue:.0f}
- Top Restaurant: {s.top_restaurant}

"""
    return f"{header}{_TEMPLATES[topic](s)}\n\n{DISCLOSURE}"
