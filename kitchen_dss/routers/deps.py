# =============================================
# File: kitchen_dss/routers/deps.py
# Purpose: Shared request schemas and dependencies for the DSS routers
# =============================================
from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from kitchen_dss.services.gateway import ModelGateway
from kitchen_dss.services.sessions import SESSION_STORE, SessionStore


def get_session_store() -> SessionStore:
    return SESSION_STORE


def get_gateway() -> ModelGateway:
    return ModelGateway()


class UserScoped(BaseModel):
    """user_id selects the per-user session (knowledge base + order snapshot)."""
    user_id: str = Field(..., min_length=1, max_length=128)


class QueryText(UserScoped):
    query: str = Field(..., min_length=3, max_length=500)

    @field_validator("query")
    @classmethod
    def _trim_query(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 3:
            raise ValueError("query must have at least 3 non-blank characters")
        return v


class ModelTarget(BaseModel):
    identity: str = Field("", max_length=80)
    base_url: Optional[str] = Field(None, max_length=300)
