# =============================================
# File: tests/test_sessions.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import threading

import pytest

from conftest import failing_transport
from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.services.dss import DSSService
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.knowledge_base import KnowledgeBase
from kitchen_dss.services.sessions import SessionStore
from kitchen_dss.services.tiers import LocalModelTier, RuleBasedTier
from kitchen_dss.utils.embeddings import EmbeddingProvider


def _store() -> SessionStore:
    def _service():
        gw = ModelGateway(transport=failing_transport())
        return DSSService(KnowledgeBase(EmbeddingProvider(backend="hash")), tiers=[LocalModelTier(gw), RuleBasedTier()])
    return SessionStore(service_factory=_service)


def test_sessions_are_created_once_per_user():
    store = _store()
    assert store.get("a") is store.get("a")
    assert store.get("a") is not store.get("b")
    assert len(store) == 2


def test_sessions_are_isolated(orders):
    store = _store()
    store.get("a").load(orders)
    assert store.get("a").stats()["embeddings_count"] == 10
    assert store.get("b").stats()["embeddings_count"] == 0
    assert store.get("b").retrieve("rejected orders", 3) == []


def test_drop_resets_and_forgets(orders):
    store = _store()
    s = store.get("a")
    s.load(orders)
    assert store.drop("a") is True
    assert s.orders == []
    assert s.stats()["initialized"] is False
    assert store.drop("a") is False
    assert store.get("a") is not s


def test_clear_drops_everything(orders):
    store = _store()
    store.get("a").load(orders)
    store.get("b").load(orders[:3])
    store.clear()
    assert len(store) == 0


def test_concurrent_loads_leave_a_consistent_snapshot(orders):
    store = _store()
    s = store.get("a")
    threads = [threading.Thread(target=s.load, args=(orders[: n],)) for n in (2, 5, 10, 7)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    st = s.stats()
    assert st["embeddings_count"] == st["orders_count"]


@pytest.mark.asyncio
async def test_session_analyze_uses_its_snapshot(orders):
    store = _store()
    s = store.get("a")
    with pytest.raises(EmptyOrderStoreError):
        await s.analyze("How can I reduce rejection rate?")
    s.load(orders)
    result = await s.analyze("How can I reduce rejection rate?", identity="Asha")
    assert result.topic == "rejections"
