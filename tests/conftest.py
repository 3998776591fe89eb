# =============================================
# File: tests/conftest.py
# Purpose: Shared fixtures: offline embeddings, no cloud key, a small order set, mock model servers
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from typing import List

import httpx
import pytest

from kitchen_dss.models import OrderRecord


@pytest.fixture(autouse=True)
def _offline(monkeypatch):
    # hash vectors only, and never reach the cloud tier
    monkeypatch.setenv("DSS_EMBEDDING_BACKEND", "hash")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("DSS_LLM_OPENAI_PATHS", raising=False)


def make_orders() -> List[OrderRecord]:
    """10 orders: 6 Completed / 4 Rejected; 5 rated orders averaging 4.2."""
    rows = [
        ("ORD-001", "Spice Route", "Completed", 450.0, 5, "2 x Butter Chicken, 1 x Naan", "Delhi"),
        ("ORD-002", "Tandoor Hub", "Completed", 320.0, 4, "1 x Paneer Tikka, 2 x Naan", "Mumbai"),
        ("ORD-003", "Spice Route", "Completed", 610.0, 4, "3 x Biryani", "Delhi"),
        ("ORD-004", "Curry House", "Completed", 280.0, 4, "1 x Dal Makhani, 1 x Naan", "Pune"),
        ("ORD-005", "Tandoor Hub", "Completed", 390.0, 4, "2 x Paneer Tikka", "Mumbai"),
        ("ORD-006", "Spice Route", "Completed", 520.0, None, "1 x Biryani, 1 x Raita", "Delhi"),
        ("ORD-007", "Curry House", "Rejected", 240.0, None, "1 x Dal Makhani", "Pune"),
        ("ORD-008", "Tandoor Hub", "Rejected", 700.0, None, "4 x Naan, 2 x Butter Chicken", "Mumbai"),
        ("ORD-009", "Spice Route", "Rejected", 150.0, None, "1 x Raita", "Delhi"),
        ("ORD-010", "Curry House", "Rejected", 460.0, None, "2 x Biryani", "Pune"),
    ]
    base_ts = 1_700_000_000_000
    return [
        OrderRecord(
            order_id=oid,
            restaurant_name=rest,
            order_placed_at=base_ts + i * 3_600_000,
            order_status=status,
            total_amount=amount,
            rating=rating,
            items=items,
            city=city,
        )
        for i, (oid, rest, status, amount, rating, items, city) in enumerate(rows)
    ]


@pytest.fixture
def orders() -> List[OrderRecord]:
    return make_orders()


def failing_transport(status: int = 500) -> httpx.MockTransport:
    """Every endpoint answers with `status`."""
    return httpx.MockTransport(lambda request: httpx.Response(status, text="unavailable"))


def unreachable_transport() -> httpx.MockTransport:
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.MockTransport(handler)


def answering_transport(text: str) -> httpx.MockTransport:
    """Every endpoint answers with an Ollama /api/generate body."""
    return httpx.MockTransport(lambda request: httpx.Response(200, json={"response": text}))
