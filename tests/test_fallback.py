# =============================================
# File: tests/test_fallback.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from kitchen_dss.services.fallback import DISCLOSURE, local_analysis, route_topic, similar_stats


@pytest.mark.parametrize("query,topic", [
    ("How can I reduce rejection rate?", "rejections"),
    ("Why do customers leave low ratings?", "ratings"),
    ("Which menu items should I push?", "menu"),
    ("What is my profit margin?", "revenue"),
    ("When is peak demand?", "demand"),
    ("Suggest an operations strategy", "operations"),
    ("hello there", "general"),
])
def test_route_topic(query, topic):
    assert route_topic(query) == topic


def test_route_topic_priority_first_match_wins():
    # mentions both ratings and rejections: ratings is checked first
    assert route_topic("customer complaints about rejection") == "ratings"
    # menu beats operations
    assert route_topic("improve the menu") == "menu"


def test_local_analysis_is_deterministic(orders):
    a = local_analysis(orders[:5], "How can I reduce rejection rate?", "Asha")
    b = local_analysis(orders[:5], "How can I reduce rejection rate?", "Asha")
    assert a == b
    assert a.endswith(DISCLOSURE)
    assert "(prepared for Asha)" in a


def test_rejections_template_flags_critical_rate(orders):
    similar = orders[5:]  # 1 completed, 4 rejected
    text = local_analysis(similar, "How can I reduce rejection rate?")
    assert "INSIGHTS ON ORDER REJECTIONS" in text
    assert "4 out of 5 orders rejected (80%)" in text
    assert "Critical: Over 40% rejection rate" in text
    assert "Completion Rate: 20% (1/5)" in text


def test_rejections_template_acceptable_when_mostly_completed(orders):
    text = local_analysis(orders[:6], "order failures?")
    assert "Acceptable rejection rate" in text


def test_zero_similar_orders_do_not_divide_by_zero():
    text = local_analysis([], "What is my revenue?")
    assert "DATA FROM 0 SIMILAR ORDERS" in text
    assert "Top Restaurant: N/A" in text
    assert "INSIGHTS ON REVENUE & PROFITABILITY" in text


def test_similar_stats_values(orders):
    s = similar_stats(orders[:5])
    assert s.count == 5
    assert s.avg_rating == "4.2"
    assert s.completion_rate == 100.0
    assert s.top_restaurant == "Spice Route"
    assert s.total_revenue == pytest.approx(2050.0)


def test_every_topic_has_five_numbered_recommendations(orders):
    for q in ["rating", "rejection", "menu", "revenue", "peak", "strategy", "hello"]:
        text = local_analysis(orders, q)
        numbered = [ln for ln in text.splitlines() if ln[:2] in {"1.", "2.", "3.", "4.", "5."}]
        assert len(numbered) == 5, q
