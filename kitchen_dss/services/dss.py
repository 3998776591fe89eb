# =============================================
# File: kitchen_dss/services/dss.py
# Purpose: Retrieval -> Context -> Tiered analysis -> Parsed recommendations
# =============================================
from __future__ import annotations
import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool
from loguru import logger

from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.models import DSSAnalysis, OrderRecord
from kitchen_dss.services.knowledge_base import KnowledgeBase
from kitchen_dss.services.tiers import (
    RULE_BASED_SOURCE,
    AnalysisRequest,
    AnalysisTier,
    default_tiers,
    run_tiers,
)
from kitchen_dss.utils.parsing import parse_recommendations
from kitchen_dss.utils.prompting import assemble_context

TOP_K = int(os.getenv("DSS_TOP_K", "5"))
DISPLAY_ORDERS = 3

FALLBACK_NOTICE = (
    "AI-enhanced analysis was unavailable (no language model answered); "
    "showing deterministic local analysis instead."
)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def executive_summary(similar_orders: Sequence[OrderRecord], query: str) -> str:
    """One-paragraph summary computed from the retrieved subset only."""
    n = len(similar_orders)
    if n == 0:
        return f'No historical data matches your query: "{query}". Insufficient data for analysis.'
    avg_value = sum(o.total_amount for o in similar_orders) / n
    completed = sum(1 for o in similar_orders if o.order_status == "Completed")
    completion = _round_half_up(completed / n * 100)
    return (
        f"Analyzed {n} similar historical orders. "
        f"Average order value: ₹{avg_value:.0f}. "
        f"Status distribution shows {completion}% completion rate."
    )


class DSSService:
    """
    Owns one KnowledgeBase and the ordered analysis tiers.
    One instance per session; nothing here is module-global.
    """

    def __init__(
        self,
        knowledge_base: Optional[KnowledgeBase] = None,
        tiers: Optional[List[AnalysisTier]] = None,
        top_k: int = TOP_K,
    ) -> None:
        self.knowledge_base = knowledge_base if knowledge_base is not None else KnowledgeBase()
        self.tiers = tiers if tiers is not None else default_tiers()
        self.top_k = top_k

    # ---- knowledge base lifecycle ----

    def build_knowledge_base(self, orders: Sequence[OrderRecord]) -> Dict[str, Any]:
        self.knowledge_base.build(orders)
        return self.get_stats()

    def retrieve_similar_orders(self, query: str, top_k: int = TOP_K) -> List[OrderRecord]:
        return self.knowledge_base.retrieve(query, top_k)

    def get_stats(self) -> Dict[str, Any]:
        return self.knowledge_base.stats()

    def reset(self) -> None:
        self.knowledge_base.reset()

    # ---- analysis ----

    async def analyze(
        self,
        query: str,
        orders: Sequence[OrderRecord],
        identity: str = "",
        base_url: Optional[str] = None,
    ) -> DSSAnalysis:
        if not orders:
            raise EmptyOrderStoreError()

        # embedding the query is blocking work (model load on first use)
        similar = await run_in_threadpool(self.retrieve_similar_orders, query, self.top_k)
        logger.info(f"[dss] {len(similar)} similar orders for query ({len(orders)} total)")

        request = AnalysisRequest(
            query=query,
            identity=identity,
            base_url=base_url,
            context=assemble_context(orders, similar, query),
            similar_orders=tuple(similar),
        )
        result, failures = await run_tiers(self.tiers, request)
        ai_enhanced = result.source != RULE_BASED_SOURCE
        logger.info(f"[dss] analysis from tier={result.tier} after {len(failures)} failed tier(s)")

        return DSSAnalysis(
            timestamp=_utc_timestamp(),
            query=query,
            similar_orders=list(similar[:DISPLAY_ORDERS]),
            recommendations=parse_recommendations(result.text),
            executive_summary=executive_summary(similar, query),
            source=result.source,
            tier=result.tier,
            ai_enhanced=ai_enhanced,
            topic=None if ai_enhanced else result.topic,
            notice=None if ai_enhanced else FALLBACK_NOTICE,
        )
