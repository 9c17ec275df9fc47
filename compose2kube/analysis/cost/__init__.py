"""Multi-cloud cost estimation."""

from .estimator import CostBreakdown, CostCategory, CostEstimator, CostLineItem
from .rates import DEFAULT_RATE_CARD, RateCard, rate_card

__all__ = [
    "CostBreakdown",
    "CostCategory",
    "CostEstimator",
    "CostLineItem",
    "DEFAULT_RATE_CARD",
    "RateCard",
    "rate_card",
]
