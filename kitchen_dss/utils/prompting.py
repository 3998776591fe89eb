# =============================================
# File: kitchen_dss/utils/prompting.py
# Purpose: Build bounded prompt context for the kitchen-manager model
# =============================================
from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from kitchen_dss.models import OrderRecord
from .sanitize import sanitize_field, collapse_ws

COMMISSION_RATE = 0.35
NET_RATE = 1.0 - COMMISSION_RATE
MAX_SIMILAR_LINES = 5
MAX_QUERY_CHARS = 500

SYSTEM_PREAMBLE = """You are 'KitchenManager AI', an expert Decision Support System advisor for {identity}'s cloud kitchen business.

Your role:
- Analyze business data and order patterns
- Provide strategic, data-driven recommendations
- Focus on actionable insights that improve profitability
- Consider operational constraints and real-world applicability
- Be specific about metrics and expected outcomes
- Prioritize high-impact recommendations

Guidelines:
- Always cite specific numbers from the data
- Provide 3-5 actionable recommendations ranked by impact
- Include implementation difficulty (Easy/Medium/Hard)
- Estimate expected business impact when possible
- Consider competitive dynamics and customer satisfaction
- Be concise but comprehensive"""

CLOSING_REQUEST = (
    "Based on the above context, please provide strategic recommendations "
    "that the kitchen manager can implement immediately."
)

RESPONSE_SHAPE = """ANALYSIS REQUEST:
Provide strategic, data-backed recommendations for a cloud kitchen manager.
1. Start with 2-3 data-driven insights that cite the numbers above.
2. Then list 2-5 recommendations ranked by impact, one per numbered line ("1. ...").
   Put the concrete action items for each recommendation on the lines directly below it.
3. Optionally end with a one-line risk note.
Focus on: actionable insights, specific metrics, business impact"""


def _pct(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0.0


def dataset_stats(orders: Sequence[OrderRecord]) -> Dict[str, object]:
    """Aggregates over the full order set. Output size does not depend on len(orders)."""
    rated = [o.rating for o in orders if o.rating]
    total_revenue = sum(o.total_amount for o in orders)
    return {
        "total_orders": len(orders),
        "total_revenue": total_revenue,
        "avg_rating": f"{sum(rated) / len(rated):.2f}" if rated else "N/A",
        "completed": sum(1 for o in orders if o.order_status == "Completed"),
        "rejected": sum(1 for o in orders if o.order_status == "Rejected"),
        "commission": total_revenue * COMMISSION_RATE,
        "net": total_revenue * NET_RATE,
    }


def _similar_line(idx: int, o: OrderRecord) -> str:
    return (
        f"Similar Order {idx}: {sanitize_field(o.restaurant_name, 60) or 'N/A'} - ₹{o.total_amount:.0f} "
        f"({sanitize_field(o.order_status, 20) or 'N/A'}) Rating: {o.rating or 'N/A'} "
        f"Items: {sanitize_field(o.items or '', 120) or 'N/A'} City: {sanitize_field(o.city or '', 40) or 'N/A'}"
    )


def assemble_context(
    all_orders: Sequence[OrderRecord],
    similar_orders: Sequence[OrderRecord],
    query: str,
) -> str:
    """
    Merge dataset-wide aggregates and the retrieved orders into one prompt block.

    Size is bounded: aggregates are fixed-width, at most MAX_SIMILAR_LINES
    similar orders are listed, and each free-text field is truncated.
    """
    stats = dataset_stats(all_orders)
    total = int(stats["total_orders"])
    similar = list(similar_orders)

    avg_similar_value = sum(o.total_amount for o in similar) / len(similar) if similar else 0.0
    similar_completion = _pct(sum(1 for o in similar if o.order_status == "Completed"), len(similar))
    lines: List[str] = [_similar_line(i, o) for i, o in enumerate(similar[:MAX_SIMILAR_LINES], start=1)]
    similar_block = "\n".join(lines) if lines else "(no matching historical orders)"

    q = collapse_ws(query)[:MAX_QUERY_CHARS]

    return f"""CLOUD KITCHEN AI MANAGER DECISION SUPPORT

QUERY: {q}

BUSINESS CONTEXT:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
FULL DATASET:
- Total Orders: {total}
- Total Revenue: ₹{stats['total_revenue']:.0f}
- Average Rating: {stats['avg_rating']}/5
- Completed: {stats['completed']} ({_pct(int(stats['completed']), total):.1f}%) | Rejected: {stats['rejected']} ({_pct(int(stats['rejected']), total):.1f}%)
- Zomato Commission (est 35%): ₹{stats['commission']:.0f}
- Net Profit (est 65%): ₹{stats['net']:.0f}

SIMILAR HISTORICAL PATTERNS (from {len(similar)} related orders):
- Avg Order Value: ₹{avg_similar_value:.0f}
- Completion Rate: {similar_completion:.1f}%
- Key Context Orders:
{similar_block}

{RESPONSE_SHAPE}"""


def system_preamble(identity: str) -> str:
    return SYSTEM_PREAMBLE.format(identity=sanitize_field(identity, 60) or "the owner")


def build_prompt(context: str, identity: str) -> str:
    """Full prompt sent to the model: persona preamble + context + closing request."""
    return f"{system_preamble(identity)}\n\n{context}\n\n{CLOSING_REQUEST}"


QA_TEMPLATE = """You are KitchenOS AI, a strategic analytics assistant for {identity}'s cloud kitchen.

{context}

USER QUESTION: {question}

INSTRUCTIONS:
- Answer the question directly and concisely (2-3 sentences).
- Use data context above to provide specific insights.
- If the question is outside the scope of kitchen analytics, politely redirect to relevant topics.
- Keep response under 200 words."""


def build_qa_prompt(question: str, data_context: str, identity: str) -> str:
    return QA_TEMPLATE.format(
        identity=sanitize_field(identity, 60) or "the owner",
        context=data_context,
        question=collapse_ws(question)[:MAX_QUERY_CHARS],
    )


INSIGHT_SYSTEM = "You are 'KitchenOS AI', a strategic partner for {identity}'s cloud kitchen. Reply with one JSON object only."

INSIGHT_TEMPLATE = """You are 'KitchenOS AI', a strategic partner for a cloud kitchen owned by {identity}.

DATA SUMMARY:
- Gross Revenue: ₹{gross:.2f}
- Zomato Commission (est {commission_pct:.0f}%): ₹{commission:.2f}
- Total Orders: {orders}
- Average Rating: {rating}
- Top Items: {top_items}
- Days since last data upload: {days}

Return a single JSON object with these keys:
1. "greeting": a warm, professional greeting to {identity}.
2. "alert": if days since last upload > {stale_days}, warn that the data is stale; otherwise null.
3. "demandForecasting": likely demand trends and menu optimization.
4. "customerInsights": customer satisfaction based on the data.
5. "profitabilityAnalysis": object with numeric grossRevenue, zomatoCommission, estimatedNet and a string "analysis".
6. "recommendations": 3 actionable steps to improve profitability or ratings.
Keep the JSON valid and parsable. No text outside the object."""


def insight_system(identity: str) -> str:
    return INSIGHT_SYSTEM.format(identity=sanitize_field(identity, 60) or "the owner")


def build_insight_prompt(
    identity: str,
    gross: float,
    orders: int,
    avg_rating: Optional[float],
    top_items: Sequence[str],
    days_since_last_order: int,
    stale_days: int,
) -> str:
    items = ", ".join(s for s in (sanitize_field(name, 60) for name in top_items) if s) or "N/A"
    return INSIGHT_TEMPLATE.format(
        identity=sanitize_field(identity, 60) or "the owner",
        gross=gross,
        commission_pct=COMMISSION_RATE * 100,
        commission=gross * COMMISSION_RATE,
        orders=orders,
        rating=f"{avg_rating:.1f}/5" if avg_rating is not None else "N/A",
        top_items=items,
        days=days_since_last_order,
        stale_days=stale_days,
    )
