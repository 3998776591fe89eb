# =============================================
# File: kitchen_dss/services/qa.py
# Purpose: Short free-form questions about the order data (model first, keyword answers otherwise)
# =============================================
from __future__ import annotations
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from kitchen_dss.errors import AllEndpointsFailedError
from kitchen_dss.models import OrderRecord
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.tiers import RULE_BASED_SOURCE
from kitchen_dss.utils.prompting import COMMISSION_RATE, NET_RATE, build_qa_prompt

_QTY_PREFIX_RE = re.compile(r"^\d+\s*[xX]\s*")


def item_counts(orders: Sequence[OrderRecord]) -> List[Tuple[str, int]]:
    """Item name -> number of orders mentioning it, most frequent first ("2 x Naan" counts as "Naan")."""
    counts: Counter = Counter()
    for o in orders:
        for part in (o.items or "").split(","):
            name = _QTY_PREFIX_RE.sub("", part.strip()).strip()
            if name:
                counts[name] += 1
    return sorted(counts.items(), key=lambda kv: -kv[1])


def data_context(orders: Sequence[OrderRecord]) -> str:
    revenue = sum(o.total_amount for o in orders)
    rated = [o.rating for o in orders if o.rating is not None]
    avg = f"{sum(rated) / len(rated):.2f}" if rated else "N/A"
    top = ", ".join(f"{name} ({n} times)" for name, n in item_counts(orders)[:5])
    return (
        "DATASET CONTEXT:\n"
        f"- Total Orders: {len(orders)}\n"
        f"- Total Revenue: ₹{revenue:.2f}\n"
        f"- Average Rating: {avg}/5\n"
        f"- Top Items: {top}\n"
        f"- Zomato Commission Rate: ~{COMMISSION_RATE * 100:.0f}%\n"
        f"- Net Revenue (approx): ₹{revenue * NET_RATE:.2f}"
    )


def _has(q: str, words: Sequence[str]) -> bool:
    return any(w in q for w in words)


def local_answer(question: str, orders: Sequence[OrderRecord]) -> str:
    """Keyword-matched answer computed straight from the data."""
    q = (question or "").lower()
    n = len(orders)
    revenue = sum(o.total_amount for o in orders)
    items = item_counts(orders)
    rated = [o.rating for o in orders if o.rating is not None]

    if _has(q, ("top item", "best seller", "popular")):
        if not items:
            return "No item data in your dataset."
        top = ", ".join(f"{name} ({c} orders)" for name, c in items[:3])
        return f"Your best sellers are: {top}. Consider promoting these items to boost revenue."

    if _has(q, ("revenue", "gross", "total")):
        avg = revenue / n if n else 0.0
        return f"Total revenue: ₹{revenue:.2f} from {n} orders. Average order value: ₹{avg:.2f}."

    if _has(q, ("rating", "customer", "satisfaction")):
        if not rated:
            return "No rating data available yet. Encourage customers to rate orders."
        return f"Average rating: {sum(rated) / len(rated):.2f}/5 from {len(rated)} rated orders. Focus on consistency to improve."

    if _has(q, ("profit", "zomato", "commission", "net")):
        commission = revenue * COMMISSION_RATE
        return f"Gross: ₹{revenue:.2f} | Zomato cut (35%): ₹{commission:.2f} | Your net: ₹{revenue - commission:.2f}."

    if _has(q, ("low", "bad", "improve", "increase")):
        if rated and sum(rated) / len(rated) < 4:
            return ("Your ratings are below 4/5. Prioritize faster delivery and consistent "
                    "quality to improve customer satisfaction.")
        if items:
            low = ", ".join(name for name, _ in items[-3:])
            return f"Low-performing items: {low}. Consider removing or repositioning these on your menu."
        return "Review your operations for delivery speed and food quality improvements."

    if items:
        return f"Based on your data: {items[0][0]} is your top seller. Total orders: {n}, Revenue: ₹{revenue:.2f}."
    return (f"Dataset has {n} orders with ₹{revenue:.2f} revenue. "
            "For detailed AI insights, ensure your local LLM is running.")


async def ask(
    question: str,
    orders: Sequence[OrderRecord],
    identity: str = "",
    base_url: Optional[str] = None,
    gateway: Optional[ModelGateway] = None,
) -> Dict[str, str]:
    """Return {"answer", "source"}; source is the model name or "local-fallback"."""
    gw = gateway or ModelGateway()
    prompt = build_qa_prompt(question, data_context(orders), identity)
    try:
        text = await gw.complete(prompt, base_url)
        return {"answer": text.strip(), "source": gw.model}
    except AllEndpointsFailedError as e:
        logger.info(f"[qa] model unavailable, answering locally: {e}")
    return {"answer": local_answer(question, orders), "source": RULE_BASED_SOURCE}
