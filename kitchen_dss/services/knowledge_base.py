# =============================================
# File: kitchen_dss/services/knowledge_base.py
# Purpose: In-memory order index: build, cosine retrieval, stats, reset
# =============================================
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from kitchen_dss.models import OrderRecord
from kitchen_dss.utils.embeddings import EmbeddingProvider


@dataclass(frozen=True)
class EmbeddedOrder:
    order_id: str
    embedding: np.ndarray
    summary: str
    order: OrderRecord


def format_amount(value: float) -> str:
    """450.0 -> '450', 450.5 -> '450.5'."""
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


def order_summary(order: OrderRecord) -> str:
    """Canonical one-line description used as the embedding input. Field order is fixed."""
    return (
        f"Order {order.order_id} at {order.restaurant_name} for ₹{format_amount(order.total_amount)} "
        f"status {order.order_status} items {order.items or 'unknown'} "
        f"rating {order.rating or 'unrated'} city {order.city or 'unknown'}"
    )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 when either vector has zero magnitude."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


class KnowledgeBase:
    """
    Embedded snapshot of one order set.

    Either fully built (one entry per order that embedded successfully) or
    empty. Rebuilding replaces the whole index; there are no incremental
    updates. Reads are safe to share; callers serialize builds.
    """

    def __init__(self, embedder: Optional[EmbeddingProvider] = None) -> None:
        self.embedder = embedder or EmbeddingProvider()
        self._entries: List[EmbeddedOrder] = []
        self._ready = False
        self._semantic = False  # index holds model vectors

    # ---------------- lifecycle ----------------

    def build(self, orders: Sequence[OrderRecord]) -> None:
        logger.info(f"[kb] building knowledge base for {len(orders)} orders")
        entries: List[EmbeddedOrder] = []
        semantic_vectors = 0
        for order in orders:
            try:
                summary = order_summary(order)
                vec = np.asarray(self.embedder.embed(summary), dtype=float)
                entries.append(EmbeddedOrder(order_id=order.order_id, embedding=vec, summary=summary, order=order))
                if self.embedder.semantic:
                    semantic_vectors += 1
            except Exception as e:
                logger.warning(f"[kb] failed to embed order {order.order_id}: {e}")
        # swap in one step so readers never see a half-built index
        self._entries = entries
        self._ready = True
        self._semantic = self.embedder.semantic
        if semantic_vectors and not self.embedder.semantic:
            # the embedder dropped to hash vectors part-way through
            self._rehash()
        logger.info(f"[kb] built with {len(entries)} embeddings")

    def _rehash(self) -> None:
        logger.warning(f"[kb] embedder switched to hash vectors; re-embedding {len(self._entries)} orders")
        self._entries = [
            EmbeddedOrder(
                order_id=e.order_id,
                embedding=np.asarray(self.embedder.embed(e.summary), dtype=float),
                summary=e.summary,
                order=e.order,
            )
            for e in self._entries
        ]
        self._semantic = self.embedder.semantic

    def reset(self) -> None:
        self._entries = []
        self._ready = False
        self._semantic = False
        self.embedder.reset()

    def stats(self) -> Dict[str, Any]:
        return {
            "initialized": self._ready,
            "embeddings_count": len(self._entries),
            "model_loaded": self.embedder.model_loaded,
            "backend": "semantic" if self._semantic else "hash",
        }

    @property
    def ready(self) -> bool:
        return self._ready

    def __len__(self) -> int:
        return len(self._entries)

    def summaries(self) -> List[str]:
        return [e.summary for e in self._entries]

    # ---------------- retrieval ----------------

    def retrieve_scored(self, query: str, top_k: int = 5) -> List[Tuple[OrderRecord, float]]:
        """Top-k (order, similarity) pairs, highest first; ties keep index order."""
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        entries = self._entries
        if not self._ready or not entries:
            logger.warning("[kb] retrieval requested on an empty or unbuilt knowledge base")
            return []

        try:
            qvec = self.embedder.embed(query)
            if self._semantic and not self.embedder.semantic:
                # query came back as a hash vector; bring the index into the same space
                self._rehash()
                entries = self._entries
            scored = [(e.order, cosine_similarity(qvec, e.embedding)) for e in entries]
        except Exception as e:
            logger.error(f"[kb] retrieval failed: {e}")
            return []

        # sorted() is stable, so equal scores stay in insertion order
        scored = sorted(scored, key=lambda x: -x[1])
        return scored[:top_k]

    def retrieve(self, query: str, top_k: int = 5) -> List[OrderRecord]:
        return [order for order, _ in self.retrieve_scored(query, top_k=top_k)]
