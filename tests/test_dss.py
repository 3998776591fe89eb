# =============================================
# File: tests/test_dss.py
# Purpose: Orchestration: tier selection, fallback equivalence, executive summary, end-to-end scenario
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import asyncio
import time
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from conftest import answering_transport, failing_transport, unreachable_transport
from kitchen_dss.errors import EmptyOrderStoreError
from kitchen_dss.services.dss import DSSService, executive_summary
from kitchen_dss.services.fallback import local_analysis
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.knowledge_base import KnowledgeBase
from kitchen_dss.services.tiers import (
    AnalysisRequest,
    CloudModelTier,
    LocalModelTier,
    RuleBasedTier,
    TierResult,
    run_tiers,
)
from kitchen_dss.utils.embeddings import EmbeddingProvider
from kitchen_dss.utils.parsing import parse_recommendations

QUERY = "How can I reduce rejection rate?"


class _FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        msg = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)], model="gpt-4o-mini")


def _fake_openai(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _service(transport, cloud=None) -> DSSService:
    tiers = [LocalModelTier(ModelGateway(transport=transport)), cloud or CloudModelTier(), RuleBasedTier()]
    return DSSService(KnowledgeBase(EmbeddingProvider(backend="hash")), tiers=tiers)


@pytest.mark.asyncio
async def test_end_to_end_unreachable_model_uses_rule_based_analysis(orders):
    svc = _service(unreachable_transport())
    svc.build_knowledge_base(orders)

    result = await svc.analyze(QUERY, orders, "Asha", "http://localhost:9")

    retrieved = svc.retrieve_similar_orders(QUERY, 5)
    completed = sum(1 for o in retrieved if o.order_status == "Completed")
    pct = int(completed / len(retrieved) * 100 + 0.5)

    assert result.query == QUERY
    assert result.ai_enhanced is False
    assert result.source == "local-fallback"
    assert result.topic == "rejections"
    assert result.notice
    assert result.recommendations
    assert len(result.similar_orders) == 3
    assert [o.order_id for o in result.similar_orders] == [o.order_id for o in retrieved[:3]]
    assert result.executive_summary.startswith("Analyzed 5 similar historical orders.")
    assert f"{pct}% completion rate" in result.executive_summary
    assert result.timestamp.endswith("Z")


@pytest.mark.asyncio
async def test_total_gateway_failure_equals_local_fallback_output(orders):
    svc = _service(failing_transport(500))
    svc.build_knowledge_base(orders)

    result = await svc.analyze(QUERY, orders, "Asha")

    expected = parse_recommendations(local_analysis(svc.retrieve_similar_orders(QUERY, 5), QUERY, "Asha"))
    assert result.recommendations == expected


@pytest.mark.asyncio
async def test_model_answer_is_parsed_and_marked_ai_enhanced(orders):
    svc = _service(answering_transport("1. Increase demand by 20%\n   - Run weekday promos"))
    svc.build_knowledge_base(orders)

    result = await svc.analyze(QUERY, orders, "Asha")

    assert result.ai_enhanced is True
    assert result.source == svc.tiers[0].gateway.model
    assert result.topic is None and result.notice is None
    assert len(result.recommendations) == 1
    rec = result.recommendations[0]
    assert rec.category == "Demand"
    assert rec.action_items == ["Run weekday promos"]
    assert rec.confidence_score == pytest.approx(0.20)


@pytest.mark.asyncio
async def test_cloud_tier_answers_when_local_model_is_down(orders):
    completions = _FakeCompletions(content="1. Tighten menu pricing\nDrop slow sellers")
    svc = _service(failing_transport(502), cloud=CloudModelTier(client=_fake_openai(completions)))
    svc.build_knowledge_base(orders)

    result = await svc.analyze("menu ideas please", orders, "Asha")

    assert result.source == "cloud:gpt-4o-mini"
    assert result.ai_enhanced is True
    assert result.recommendations[0].action_items == ["Drop slow sellers"]
    sent = completions.calls[0]["messages"]
    assert sent[0]["role"] == "system" and "Asha" in sent[0]["content"]
    assert "CLOUD KITCHEN AI MANAGER DECISION SUPPORT" in sent[1]["content"]


@pytest.mark.asyncio
async def test_cloud_tier_errors_become_failed_results():
    tier = CloudModelTier(client=_fake_openai(_FakeCompletions(error=OpenAIError("quota exceeded"))))
    req = AnalysisRequest(query="q?", identity="", base_url=None, context="CTX")
    out = await tier.run(req)
    assert out.ok is False
    assert "quota exceeded" in out.error


@pytest.mark.asyncio
async def test_cloud_tier_disabled_without_api_key():
    out = await CloudModelTier().run(AnalysisRequest(query="q?", identity="", base_url=None, context="CTX"))
    assert out.ok is False
    assert "OPENAI_API_KEY" in out.error


@pytest.mark.asyncio
async def test_run_tiers_takes_first_success_and_reports_failures():
    class _Down:
        name = "down"

        async def run(self, request):
            return TierResult.failed(self.name, "offline")

    req = AnalysisRequest(query="What is my revenue?", identity="", base_url=None, context="CTX")
    result, failures = await run_tiers([_Down(), RuleBasedTier(), _Down()], req)
    assert result.tier == "rule-based"
    assert result.topic == "revenue"
    assert [f.tier for f in failures] == ["down"]


@pytest.mark.asyncio
async def test_run_tiers_falls_back_even_without_rule_based_tier():
    class _Down:
        name = "down"

        async def run(self, request):
            return TierResult.failed(self.name, "offline")

    req = AnalysisRequest(query="hello", identity="", base_url=None, context="CTX")
    result, failures = await run_tiers([_Down()], req)
    assert result.ok and result.source == "local-fallback"
    assert len(failures) == 1


@pytest.mark.asyncio
async def test_empty_order_store_is_a_precondition_failure():
    svc = _service(answering_transport("never used"))
    with pytest.raises(EmptyOrderStoreError):
        await svc.analyze(QUERY, [], "Asha")


@pytest.mark.asyncio
async def test_unbuilt_base_still_answers_with_no_history(orders):
    svc = _service(failing_transport())
    result = await svc.analyze(QUERY, orders, "Asha")
    assert result.similar_orders == []
    assert result.executive_summary == (
        f'No historical data matches your query: "{QUERY}". Insufficient data for analysis.'
    )
    assert result.recommendations


def test_executive_summary_rounds_half_up(orders):
    # 1 of 8 completed = 12.5% -> 13
    subset = [orders[0]] + [o for o in orders if o.order_status == "Rejected"] + [orders[6], orders[7], orders[8]]
    text = executive_summary(subset, QUERY)
    assert "Analyzed 8 similar historical orders." in text
    assert "13% completion rate" in text


def test_service_stats_and_reset(orders):
    svc = _service(failing_transport())
    assert svc.build_knowledge_base(orders)["embeddings_count"] == len(orders)
    svc.reset()
    assert svc.get_stats()["initialized"] is False


class _SlowEmbedder(EmbeddingProvider):
    """Hash vectors, but each query takes a while, like a cold model."""
    delay_s = 0.0

    def embed(self, text):
        if self.delay_s:
            time.sleep(self.delay_s)
        return super().embed(text)


@pytest.mark.asyncio
async def test_retrieval_does_not_block_the_event_loop(orders):
    embedder = _SlowEmbedder(backend="hash")
    svc = DSSService(KnowledgeBase(embedder), tiers=[RuleBasedTier()])
    svc.build_knowledge_base(orders)
    embedder.delay_s = 0.5

    done = asyncio.Event()
    gaps = []

    async def ticker():
        last = time.perf_counter()
        while not done.is_set():
            await asyncio.sleep(0.01)
            now = time.perf_counter()
            gaps.append(now - last)
            last = now

    async def run():
        try:
            return await svc.analyze("menu ideas for next week", orders, "Asha")
        finally:
            done.set()

    result, _ = await asyncio.gather(run(), ticker())
    assert result.similar_orders
    assert max(gaps) < 0.25
