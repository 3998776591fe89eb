# =============================================
# File: kitchen_dss/services/tiers.py
# Purpose: Analysis tiers (local LLM -> cloud LLM -> rule-based) behind one call signature
# =============================================
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from kitchen_dss.errors import AllEndpointsFailedError
from kitchen_dss.models import OrderRecord
from kitchen_dss.services.fallback import local_analysis, route_topic
from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.utils.prompting import CLOSING_REQUEST, system_preamble

CLOUD_MODEL = os.getenv("CLOUD_LLM_MODEL", "gpt-4o-mini")
CLOUD_TEMPERATURE = float(os.getenv("CLOUD_LLM_TEMPERATURE", "0.4"))
CLOUD_MAX_TOKENS = int(os.getenv("CLOUD_LLM_MAX_TOKENS", "1024"))
CLOUD_TIMEOUT_S = float(os.getenv("CLOUD_LLM_TIMEOUT_SECONDS", "30"))
CLOUD_MAX_RETRIES = int(os.getenv("CLOUD_LLM_MAX_RETRIES", "1"))

RULE_BASED_SOURCE = "local-fallback"


@dataclass(frozen=True)
class AnalysisRequest:
    """
    What every tier receives. `prompt` (and `system` for chat models) carry an
    already-built prompt; when unset the model tiers wrap `context` with the
    DSS manager persona.
    """
    query: str
    identity: str
    base_url: Optional[str]
    context: str
    similar_orders: Sequence[OrderRecord] = field(default_factory=tuple)
    prompt: Optional[str] = None
    system: Optional[str] = None


@dataclass(frozen=True)
class TierResult:
    """Outcome of one tier. Failure is a value, not an exception."""
    tier: str
    ok: bool
    text: str = ""
    source: str = ""
    error: Optional[str] = None
    topic: Optional[str] = None

    @classmethod
    def failed(cls, tier: str, error: str) -> "TierResult":
        return cls(tier=tier, ok=False, error=error)


class AnalysisTier(Protocol):
    name: str

    async def run(self, request: AnalysisRequest) -> TierResult:
        ...


class LocalModelTier:
    """Self-hosted model reached through the multi-endpoint gateway."""
    name = "local-model"

    def __init__(self, gateway: Optional[ModelGateway] = None) -> None:
        self.gateway = gateway or ModelGateway()

    async def run(self, request: AnalysisRequest) -> TierResult:
        try:
            if request.prompt:
                text = await self.gateway.complete(request.prompt, request.base_url)
            else:
                text = await self.gateway.query(request.context, request.identity, request.base_url)
        except AllEndpointsFailedError as e:
            return TierResult.failed(self.name, str(e))
        return TierResult(tier=self.name, ok=True, text=text, source=self.gateway.model)


class CloudModelTier:
    """
    OpenAI chat completions. Skipped unless OPENAI_API_KEY is set.
    Tries up to CLOUD_MAX_RETRIES + 1 times with CLOUD_TIMEOUT_S each.
    """
    name = "cloud-model"

    def __init__(self, model: Optional[str] = None, client: Optional[AsyncOpenAI] = None) -> None:
        self.model = model or CLOUD_MODEL
        self._client = client

    def enabled(self) -> bool:
        return self._client is not None or bool(os.getenv("OPENAI_API_KEY"))

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def run(self, request: AnalysisRequest) -> TierResult:
        if not self.enabled():
            return TierResult.failed(self.name, "OPENAI_API_KEY not set")

        messages = [
            {"role": "system", "content": request.system or system_preamble(request.identity)},
            {"role": "user", "content": request.prompt or f"{request.context}\n\n{CLOSING_REQUEST}"},
        ]
        last_err = "no attempt made"
        for attempt in range(max(1, CLOUD_MAX_RETRIES + 1)):
            try:
                resp = await self._get_client().chat.completions.create(
                    model=self.model,
                    temperature=CLOUD_TEMPERATURE,
                    max_tokens=CLOUD_MAX_TOKENS,
                    messages=messages,
                    timeout=CLOUD_TIMEOUT_S,
                )
            except OpenAIError as e:
                last_err = f"{e.__class__.__name__}: {e}"
                logger.warning(f"[cloud] attempt {attempt + 1} failed: {last_err}")
                continue
            text = (resp.choices[0].message.content or "").strip() if resp.choices else ""
            if text:
                return TierResult(tier=self.name, ok=True, text=text, source=f"cloud:{getattr(resp, 'model', None) or self.model}")
            last_err = "empty completion"
        return TierResult.failed(self.name, last_err)


class RuleBasedTier:
    """Deterministic keyword-routed analysis. Always succeeds."""
    name = "rule-based"

    async def run(self, request: AnalysisRequest) -> TierResult:
        text = local_analysis(request.similar_orders, request.query, request.identity)
        return TierResult(
            tier=self.name,
            ok=True,
            text=text,
            source=RULE_BASED_SOURCE,
            topic=route_topic(request.query),
        )


def default_tiers(gateway: Optional[ModelGateway] = None) -> List[AnalysisTier]:
    return [LocalModelTier(gateway), CloudModelTier(), RuleBasedTier()]


async def run_tiers(
    tiers: Sequence[AnalysisTier],
    request: AnalysisRequest,
    accept: Optional[Callable[[str], bool]] = None,
) -> Tuple[TierResult, List[TierResult]]:
    """
    Run tiers in order; return the first ok result plus the failures before it.
    `accept` can veto an ok reply (e.g. text that is not the JSON asked for).
    """
    failures: List[TierResult] = []
    for tier in tiers:
        result = await tier.run(request)
        if result.ok and accept is not None and not accept(result.text):
            result = TierResult.failed(result.tier, "reply rejected: unexpected format")
        if result.ok:
            return result, failures
        logger.info(f"[dss] tier {result.tier} unavailable: {result.error}")
        failures.append(result)
    # only reachable when the rule-based tier was left out of the chain
    last = RuleBasedTier()
    return await last.run(request), failures
