# =============================================
# File: tests/test_business_metrics.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime, timezone

import pytest

from kitchen_dss.models import OrderRecord
from kitchen_dss.services.business_metrics import (
    analyze_rejections,
    calculate_metrics,
    full_report,
    inventory_insights,
    pricing_optimization,
    satisfaction_trends,
    time_slot,
)


def _ms(hour: int) -> int:
    return int(datetime(2024, 1, 1, hour, 30, tzinfo=timezone.utc).timestamp() * 1000)


def test_empty_snapshot_gives_zeroed_metrics():
    m = calculate_metrics([])
    assert m["total_orders"] == 0
    assert m["total_revenue"] == 0.0
    assert m["top_restaurants"] == []
    assert m["rating_distribution"] == {}


def test_calculate_metrics_totals(orders):
    m = calculate_metrics(orders)
    assert m["total_orders"] == 10
    assert m["total_revenue"] == pytest.approx(4120.0)
    assert m["avg_order_value"] == pytest.approx(412.0)
    assert m["avg_rating"] == pytest.approx(4.2)
    assert m["completion_rate"] == pytest.approx(60.0)
    assert m["rejection_rate"] == pytest.approx(40.0)
    assert m["completed_orders"] == 6 and m["rejected_orders"] == 4
    assert m["rating_distribution"] == {1: 0, 2: 0, 3: 0, 4: 4, 5: 1}
    assert m["status_distribution"] == {"Completed": 6, "Rejected": 4}
    assert m["estimated_profit"] == pytest.approx(4120.0 * 0.65)
    assert m["commission"] == pytest.approx(4120.0 * 0.35)


def test_top_restaurants_by_revenue(orders):
    top = calculate_metrics(orders)["top_restaurants"]
    assert top[0] == {"name": "Spice Route", "count": 4, "revenue": pytest.approx(1730.0)}
    assert [r["name"] for r in top] == ["Spice Route", "Tandoor Hub", "Curry House"]


def test_top_cities_carry_average_rating(orders):
    cities = {c["name"]: c for c in calculate_metrics(orders)["top_cities"]}
    assert cities["Delhi"]["count"] == 4
    assert cities["Delhi"]["avg_rating"] == pytest.approx(4.5)


def test_popular_items_by_frequency(orders):
    items = calculate_metrics(orders)["popular_items"]
    assert items[0]["frequency"] >= items[-1]["frequency"]
    assert {"item": "3 x Biryani", "frequency": 1, "avg_rating": 4.0} in items


def test_time_slots_use_utc_hour():
    assert time_slot(_ms(3)) == "Night (12am-6am)"
    assert time_slot(_ms(9)) == "Morning (6am-12pm)"
    assert time_slot(_ms(14)) == "Afternoon (12pm-6pm)"
    assert time_slot(_ms(21)) == "Evening (6pm-12am)"


def test_analyze_rejections(orders):
    r = analyze_rejections(orders)
    assert r["total_rejected"] == 4
    assert r["rejection_rate"] == pytest.approx(40.0)
    assert r["estimated_loss"] == pytest.approx(240 + 700 + 150 + 460)
    assert r["by_city"] == {"Pune": 2, "Mumbai": 1, "Delhi": 1}
    assert sum(r["by_time_of_day"].values()) == 4


def test_analyze_rejections_on_empty_snapshot():
    assert analyze_rejections([])["rejection_rate"] == 0.0


def _priced(amount: float, status: str) -> OrderRecord:
    return OrderRecord(order_id=f"{status}-{amount}", restaurant_name="R", order_status=status, total_amount=amount)


def test_pricing_strategy_premium_when_completed_orders_cost_more():
    orders = [_priced(500, "Completed"), _priced(520, "Completed"), _priced(200, "Rejected")]
    p = pricing_optimization(orders)
    assert p["recommended_strategy"].startswith("PREMIUM")
    assert p["optimal_price_point"] == pytest.approx(510.0)
    assert p["price_elasticity"] == pytest.approx((200 - 510) / 510)


def test_pricing_strategy_discount_and_bands():
    orders = [_priced(150, "Completed"), _priced(450, "Cancelled"), _priced(480, "Rejected")]
    p = pricing_optimization(orders)
    assert p["recommended_strategy"].startswith("DISCOUNT")
    bands = {b["range"]: b for b in p["completion_by_price"]}
    assert bands["₹100-200"]["completion_rate"] == 100.0
    assert bands["₹300-500"]["total_orders"] == 2
    assert bands["₹300-500"]["completion_rate"] == 0.0


def test_pricing_without_orders_does_not_divide_by_zero():
    p = pricing_optimization([])
    assert p["current_avg_price"] == 0.0
    assert p["recommended_strategy"].startswith("BALANCED")


def test_satisfaction_trends(orders):
    s = satisfaction_trends(orders)
    assert s["avg_rating"] == 4.2
    assert s["rating_distribution"]["four"] == 4
    assert s["percentage_above_4"] == 100.0
    assert "Consistently high customer satisfaction" in s["strengths"]
    assert "High rejection rate affecting ratings" in s["improvement_areas"]
    assert "Order fulfillment completion rate too low" in s["improvement_areas"]


def test_satisfaction_without_ratings():
    s = satisfaction_trends([_priced(100, "Completed")])
    assert s["percentage_above_4"] == 0.0
    assert s["strengths"] == ["Good baseline performance"]
    assert s["improvement_areas"] == ["Maintain current quality standards"]


def test_inventory_insights_stock_and_trend(orders):
    inv = inventory_insights(orders)
    assert all(row["trend"] == "stable" for row in inv["top_items"])
    assert inv["predicted_demand"] == 1
    first = inv["top_items"][0]["item"]
    assert inv["recommended_stock"][first] == pytest.approx(1.2)
    assert "Delhi" in inv["by_city"]

    recent = [o for o in orders if o.order_id in ("ORD-009", "ORD-006")]
    inv2 = inventory_insights(orders, recent=recent)
    trends = {row["item"]: row["trend"] for row in inv2["top_items"]}
    assert trends["1 x Raita"] == "up"
    assert trends["2 x Butter Chicken"] == "down"


def test_full_report_sections(orders):
    assert set(full_report(orders)) == {"metrics", "rejections", "pricing", "satisfaction", "inventory"}
