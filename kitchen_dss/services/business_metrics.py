# =============================================
# File: kitchen_dss/services/business_metrics.py
# Purpose: Aggregate dashboards over an order snapshot (no model involved)
# =============================================
from __future__ import annotations
import math
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from kitchen_dss.models import OrderRecord
from kitchen_dss.utils.prompting import COMMISSION_RATE, NET_RATE

PRICE_BANDS = [(0, 100), (100, 200), (200, 300), (300, 500), (500, 10000)]
ABANDONED_STATUSES = ("Rejected", "Cancelled")


def _mean(xs: Sequence[float]) -> float:
    return sum(xs) / len(xs) if xs else 0.0


def _rated(orders: Sequence[OrderRecord]) -> List[int]:
    return [o.rating for o in orders if o.rating is not None]


def split_items(items: Optional[str]) -> List[str]:
    return [p.strip() for p in (items or "").split(",") if p.strip()]


def time_slot(order_placed_at: int) -> str:
    """Bucket an epoch-millis timestamp by its UTC hour."""
    hour = datetime.fromtimestamp(order_placed_at / 1000, tz=timezone.utc).hour
    if hour < 6:
        return "Night (12am-6am)"
    if hour < 12:
        return "Morning (6am-12pm)"
    if hour < 18:
        return "Afternoon (12pm-6pm)"
    return "Evening (6pm-12am)"


# ---------------------------------------------------------------------
# Breakdowns
# ---------------------------------------------------------------------

def top_restaurants(orders: Sequence[OrderRecord], limit: int = 5) -> List[Dict[str, Any]]:
    acc: Dict[str, Dict[str, float]] = {}
    for o in orders:
        row = acc.setdefault(o.restaurant_name, {"count": 0, "revenue": 0.0})
        row["count"] += 1
        row["revenue"] += o.total_amount
    rows = [{"name": name, "count": int(v["count"]), "revenue": v["revenue"]} for name, v in acc.items()]
    return sorted(rows, key=lambda r: -r["revenue"])[:limit]


def top_cities(orders: Sequence[OrderRecord], limit: int = 5) -> List[Dict[str, Any]]:
    counts: Counter = Counter()
    ratings: Dict[str, List[int]] = {}
    for o in orders:
        if not o.city:
            continue
        counts[o.city] += 1
        if o.rating is not None:
            ratings.setdefault(o.city, []).append(o.rating)
    rows = [{"name": c, "count": n, "avg_rating": _mean(ratings.get(c, []))} for c, n in counts.items()]
    return sorted(rows, key=lambda r: -r["count"])[:limit]


def popular_items(orders: Sequence[OrderRecord], limit: int = 15) -> List[Dict[str, Any]]:
    freq: Counter = Counter()
    ratings: Dict[str, List[int]] = {}
    for o in orders:
        for item in split_items(o.items):
            freq[item] += 1
            if o.rating is not None:
                ratings.setdefault(item, []).append(o.rating)
    rows = [{"item": i, "frequency": n, "avg_rating": _mean(ratings.get(i, []))} for i, n in freq.items()]
    return sorted(rows, key=lambda r: -r["frequency"])[:limit]


def rating_distribution(orders: Sequence[OrderRecord]) -> Dict[int, int]:
    dist = {star: 0 for star in range(1, 6)}
    for r in _rated(orders):
        dist[r] += 1
    return dist


def _sum_by(orders: Sequence[OrderRecord], key) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for o in orders:
        k = key(o)
        if k:
            out[k] = out.get(k, 0.0) + o.total_amount
    return out


# ---------------------------------------------------------------------
# Public reports
# ---------------------------------------------------------------------

def calculate_metrics(orders: Sequence[OrderRecord]) -> Dict[str, Any]:
    """Dashboard totals. An empty snapshot gives zeroed metrics, never an error."""
    n = len(orders)
    if n == 0:
        return {
            "total_orders": 0,
            "total_revenue": 0.0,
            "avg_order_value": 0.0,
            "avg_rating": 0.0,
            "completion_rate": 0.0,
            "rejection_rate": 0.0,
            "completed_orders": 0,
            "rejected_orders": 0,
            "top_restaurants": [],
            "top_cities": [],
            "popular_items": [],
            "rating_distribution": {},
            "status_distribution": {},
            "revenue_by_city": {},
            "revenue_by_restaurant": {},
            "estimated_profit": 0.0,
            "commission": 0.0,
        }

    revenue = sum(o.total_amount for o in orders)
    completed = sum(1 for o in orders if o.order_status == "Completed")
    rejected = sum(1 for o in orders if o.order_status == "Rejected")
    return {
        "total_orders": n,
        "total_revenue": revenue,
        "avg_order_value": revenue / n,
        "avg_rating": _mean(_rated(orders)),
        "completion_rate": completed / n * 100,
        "rejection_rate": rejected / n * 100,
        "completed_orders": completed,
        "rejected_orders": rejected,
        "top_restaurants": top_restaurants(orders),
        "top_cities": top_cities(orders),
        "popular_items": popular_items(orders),
        "rating_distribution": rating_distribution(orders),
        "status_distribution": dict(Counter(o.order_status for o in orders)),
        "revenue_by_city": _sum_by(orders, lambda o: o.city),
        "revenue_by_restaurant": _sum_by(orders, lambda o: o.restaurant_name),
        "estimated_profit": revenue * NET_RATE,
        "commission": revenue * COMMISSION_RATE,
    }


def analyze_rejections(orders: Sequence[OrderRecord]) -> Dict[str, Any]:
    rejected = [o for o in orders if o.order_status == "Rejected"]
    by_city: Counter = Counter(o.city for o in rejected if o.city)
    by_restaurant: Counter = Counter(o.restaurant_name for o in rejected)
    by_time: Counter = Counter(time_slot(o.order_placed_at) for o in rejected)
    return {
        "total_rejected": len(rejected),
        "rejection_rate": len(rejected) / len(orders) * 100 if orders else 0.0,
        "estimated_loss": sum(o.total_amount for o in rejected),
        "by_city": dict(by_city),
        "by_restaurant": dict(by_restaurant),
        "by_time_of_day": dict(by_time),
    }


def _completion_by_price(completed: Sequence[OrderRecord], abandoned: Sequence[OrderRecord]) -> List[Dict[str, Any]]:
    rows = []
    for lo, hi in PRICE_BANDS:
        done = sum(1 for o in completed if lo <= o.total_amount < hi)
        lost = sum(1 for o in abandoned if lo <= o.total_amount < hi)
        total = done + lost
        rows.append({
            "range": f"₹{lo}-{hi}",
            "completion_rate": done / total * 100 if total else 0.0,
            "total_orders": total,
        })
    return rows


def _pricing_strategy(completed_avg: float, abandoned_avg: float) -> str:
    if completed_avg > abandoned_avg * 1.2:
        return "PREMIUM: Higher prices still convert well - consider increasing slightly"
    if completed_avg < abandoned_avg * 0.8:
        return "DISCOUNT: Abandoned orders are at higher price - test lower price points"
    return "BALANCED: Current pricing is optimal"


def pricing_optimization(orders: Sequence[OrderRecord]) -> Dict[str, Any]:
    completed = [o for o in orders if o.order_status == "Completed"]
    abandoned = [o for o in orders if o.order_status in ABANDONED_STATUSES]
    completed_avg = _mean([o.total_amount for o in completed])
    abandoned_avg = _mean([o.total_amount for o in abandoned])
    elasticity = (abandoned_avg - completed_avg) / completed_avg if abandoned_avg > 0 and completed_avg > 0 else 0.0
    return {
        "current_avg_price": _mean([o.total_amount for o in orders]),
        "completion_by_price": _completion_by_price(completed, abandoned),
        "optimal_price_point": completed_avg,
        "price_elasticity": elasticity,
        "recommended_increase": completed_avg * 1.05,
        "recommended_strategy": _pricing_strategy(completed_avg, abandoned_avg),
    }


def _improvement_areas(low_ratings: int, orders: Sequence[OrderRecord]) -> List[str]:
    n = len(orders)
    if n == 0:
        return ["Maintain current quality standards"]
    areas = []
    if low_ratings / n > 0.1:
        areas.append("Quality consistency needs improvement")
    if sum(1 for o in orders if o.order_status == "Rejected") / n > 0.15:
        areas.append("High rejection rate affecting ratings")
    if sum(1 for o in orders if o.order_status == "Completed") < n * 0.85:
        areas.append("Order fulfillment completion rate too low")
    return areas or ["Maintain current quality standards"]


def _strengths(five: int, four: int, total_rated: int) -> List[str]:
    if total_rated == 0:
        return ["Good baseline performance"]
    out = []
    if (five + four) / total_rated > 0.8:
        out.append("Consistently high customer satisfaction")
    if five / total_rated > 0.5:
        out.append("Exceptional quality delivering 5-star ratings")
    return out or ["Good baseline performance"]


def satisfaction_trends(orders: Sequence[OrderRecord]) -> Dict[str, Any]:
    rated = _rated(orders)
    dist = rating_distribution(orders)
    return {
        "avg_rating": round(_mean(rated), 2),
        "rating_distribution": {
            "five": dist[5], "four": dist[4], "three": dist[3], "two": dist[2], "one": dist[1],
        },
        "percentage_above_4": round((dist[5] + dist[4]) / len(rated) * 100, 1) if rated else 0.0,
        "improvement_areas": _improvement_areas(dist[1] + dist[2], orders),
        "strengths": _strengths(dist[5], dist[4], len(rated)),
    }


def _trend(idx: int, recent_idx: Optional[int]) -> str:
    if recent_idx is None or recent_idx > idx:
        return "down"
    if recent_idx < idx:
        return "up"
    return "stable"


def inventory_insights(
    orders: Sequence[OrderRecord],
    recent: Optional[Sequence[OrderRecord]] = None,
) -> Dict[str, Any]:
    """
    Stock suggestions from item frequency. With `recent`, an item's trend
    compares its popularity rank in `recent` against the full snapshot.
    """
    top = popular_items(orders)
    recent_rank = {row["item"]: i for i, row in enumerate(popular_items(recent) if recent is not None else top)}

    by_city: Dict[str, List[str]] = {}
    for o in orders:
        if o.city and o.items:
            by_city.setdefault(o.city, []).append(o.items)

    return {
        "top_items": [
            {"item": row["item"], "frequency": row["frequency"], "trend": _trend(i, recent_rank.get(row["item"]))}
            for i, row in enumerate(top[:10])
        ],
        # weekly need plus a 20% buffer
        "recommended_stock": {row["item"]: math.ceil(row["frequency"] / 7) * 1.2 for row in top[:10]},
        "by_city": by_city,
        "predicted_demand": math.ceil(len(orders) / 30 * 1.1),
    }


def full_report(orders: Sequence[OrderRecord]) -> Dict[str, Any]:
    return {
        "metrics": calculate_metrics(orders),
        "rejections": analyze_rejections(orders),
        "pricing": pricing_optimization(orders),
        "satisfaction": satisfaction_trends(orders),
        "inventory": inventory_insights(orders),
    }
