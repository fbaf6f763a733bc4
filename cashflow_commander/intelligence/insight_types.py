"""Payload schemas for each insight type.

An insight's ``data`` is interpreted according to its ``type``.
"""
from typing import Dict, Any, Optional, Type

from pydantic import BaseModel


class SpendingTrendData(BaseModel):
    last_week_total: float
    previous_week_total: float
    change: Optional[float] = None  # None when the previous week had no spend


class TopExpenseData(BaseModel):
    transaction_id: int
    category: str
    amount: float
    description: str = ""


class CategoryStats(BaseModel):
    amount: float
    count: int


class CategoryBreakdownData(BaseModel):
    top_category: str
    amount: float
    count: int
    percentage: float
    totals: Dict[str, CategoryStats]


class TrendDetectionData(BaseModel):
    leader: str
    runner_up: str
    leader_amount: float
    runner_up_amount: float
    difference_pct: Optional[float] = None


class SavingsOpportunityData(BaseModel):
    savings_rate: float
    target_savings: float
    additional_needed: float
    income: float
    expenses: float


class RecommendationData(BaseModel):
    average_transaction: float
    transaction_count: int


INSIGHT_DATA_MODELS: Dict[str, Type[BaseModel]] = {
    "spending_trend": SpendingTrendData,
    "top_category": TopExpenseData,
    "category_breakdown": CategoryBreakdownData,
    "trend_detection": TrendDetectionData,
    "savings_opportunity": SavingsOpportunityData,
    "recommendation": RecommendationData,
}


def parse_insight_data(insight_type: str, data: Any) -> Any:
    """Validate a stored payload against the schema for its insight type.

    Unknown types are passed through unchanged.
    """
    model = INSIGHT_DATA_MODELS.get(insight_type)
    if model is None or data is None:
        return data
    return model.model_validate(data).model_dump()
