"""Request validation for opportunity create/update and search."""

from yoma_opportunity.validation.engine import (
    RequestValidator,
    ValidationContext,
    ValidationResult,
)
from yoma_opportunity.validation.rules import OPPORTUNITY_REQUEST_RULES
from yoma_opportunity.validation.search import SEARCH_FILTER_RULES

__all__ = [
    "OPPORTUNITY_REQUEST_RULES",
    "RequestValidator",
    "SEARCH_FILTER_RULES",
    "ValidationContext",
    "ValidationResult",
]
