# =============================================
# File: kitchen_dss/models.py
# Purpose: Order records and DSS result types shared by services and routers
# =============================================
from __future__ import annotations
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class OrderRecord(BaseModel):
    """
    One normalized delivery order, as supplied by the order store.
    Accepts both snake_case and the camelCase keys of the CSV export layer.
    """
    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., min_length=1, validation_alias=AliasChoices("order_id", "orderId"))
    restaurant_name: str = Field("", validation_alias=AliasChoices("restaurant_name", "restaurantName"))
    order_placed_at: int = Field(0, validation_alias=AliasChoices("order_placed_at", "orderPlacedAt"))
    order_status: str = Field("", validation_alias=AliasChoices("order_status", "orderStatus"))
    total_amount: float = Field(0.0, ge=0.0, validation_alias=AliasChoices("total_amount", "totalAmount"))
    rating: Optional[int] = Field(None, ge=1, le=5)
    items: Optional[str] = None
    city: Optional[str] = None
    customer_name: Optional[str] = Field(None, validation_alias=AliasChoices("customer_name", "customerName"))

    @field_validator("rating", mode="before")
    @classmethod
    def _blank_rating(cls, v):
        # exports use 0 / "" for "not rated"
        if v in (None, "", 0, "0"):
            return None
        return v

    @field_validator("items", "city", "customer_name", mode="before")
    @classmethod
    def _blank_text(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Recommendation(BaseModel):
    category: str
    insight: str
    action_items: List[str] = Field(default_factory=list)
    confidence_score: float = Field(..., ge=0.0, le=1.0)


class DSSAnalysis(BaseModel):
    """Result of one decision-support query. Built fresh per call."""
    model_config = ConfigDict(frozen=True)

    timestamp: str
    query: str
    similar_orders: List[OrderRecord]
    recommendations: List[Recommendation]
    executive_summary: str
    source: str
    tier: Optional[str] = None  # local-model, cloud-model or rule-based
    ai_enhanced: bool
    topic: Optional[str] = None
    notice: Optional[str] = None


class ProfitabilityAnalysis(BaseModel):
    gross_revenue: float = Field(..., validation_alias=AliasChoices("gross_revenue", "grossRevenue"))
    zomato_commission: float = Field(..., validation_alias=AliasChoices("zomato_commission", "zomatoCommission"))
    estimated_net: float = Field(..., validation_alias=AliasChoices("estimated_net", "estimatedNet"))
    analysis: str


class KitchenInsight(BaseModel):
    """
    Dashboard snapshot of the whole order set: greeting, stale-data alert,
    demand / customer / profitability commentary and a few next steps.
    Model replies use camelCase keys; both spellings validate.
    """
    greeting: str
    alert: Optional[str] = None
    demand_forecasting: str = Field(..., validation_alias=AliasChoices("demand_forecasting", "demandForecasting"))
    customer_insights: str = Field(..., validation_alias=AliasChoices("customer_insights", "customerInsights"))
    profitability_analysis: ProfitabilityAnalysis = Field(
        ..., validation_alias=AliasChoices("profitability_analysis", "profitabilityAnalysis")
    )
    recommendations: List[str] = Field(..., min_length=1)
    source: str = ""
    ai_enhanced: bool = False

    @field_validator("alert", mode="before")
    @classmethod
    def _blank_alert(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("recommendations", mode="before")
    @classmethod
    def _trim_recommendations(cls, v):
        if isinstance(v, list):
            return [s.strip() for s in v if isinstance(s, str) and s.strip()][:5]
        return v
