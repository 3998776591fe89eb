# =============================================
# File: kitchen_dss/services/sessions.py
# Purpose: Per-user DSS sessions (knowledge base + order snapshot), in memory
# =============================================
from __future__ import annotations
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from kitchen_dss.models import DSSAnalysis, OrderRecord
from kitchen_dss.services.dss import DSSService
from kitchen_dss.utils import slog
from kitchen_dss.utils.timing import stage_timer


class Session:
    """
    One user's DSS state: the service (which owns the knowledge base) and
    the order snapshot the base was built from. `lock` serializes rebuilds
    against retrievals on the same session.
    """

    def __init__(self, user_id: str, service: DSSService) -> None:
        self.user_id = user_id
        self.service = service
        self.orders: List[OrderRecord] = []
        self.lock = threading.Lock()

    def load(self, orders: Sequence[OrderRecord]) -> Dict[str, Any]:
        with self.lock, stage_timer() as elapsed_ms:
            snapshot = list(orders)
            stats = self.service.build_knowledge_base(snapshot)
            self.orders = snapshot
            slog.kb_built(self.user_id, len(snapshot), stats, elapsed_ms())
            return stats

    def retrieve(self, query: str, top_k: int) -> List[OrderRecord]:
        with self.lock:
            return self.service.retrieve_similar_orders(query, top_k)

    async def analyze(self, query: str, identity: str = "", base_url: Optional[str] = None) -> DSSAnalysis:
        # the index swap in KnowledgeBase.build is atomic, so only the snapshot copy needs the lock
        orders = self.snapshot()
        return await self.service.analyze(query, orders, identity, base_url)

    def snapshot(self) -> List[OrderRecord]:
        with self.lock:
            return list(self.orders)

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            return {**self.service.get_stats(), "orders_count": len(self.orders)}

    def reset(self) -> None:
        with self.lock:
            self.service.reset()
            self.orders = []


class SessionStore:
    """
    user_id -> Session, created on first use.
    - get(user_id): existing or new session
    - drop(user_id): reset and forget a session
    Not persisted: sessions live as long as the process.
    """

    def __init__(self, service_factory: Optional[Callable[[], DSSService]] = None) -> None:
        self._factory = service_factory or DSSService
        self._lock = threading.Lock()
        self._mem: Dict[str, Session] = {}

    def get(self, user_id: str) -> Session:
        with self._lock:
            s = self._mem.get(user_id)
            if s is None:
                logger.info(f"[sessions] new session for {user_id}")
                s = Session(user_id, self._factory())
                self._mem[user_id] = s
            return s

    def drop(self, user_id: str) -> bool:
        with self._lock:
            s = self._mem.pop(user_id, None)
        if s is None:
            return False
        s.reset()
        slog.kb_reset(user_id)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._mem)

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._mem.values())
            self._mem.clear()
        for s in sessions:
            s.reset()


# Global instance
SESSION_STORE = SessionStore()
