"""Aggregation and summary queries."""

from finora.queries import aggregation
from finora.queries.summary import SummaryQuery

__all__ = [
    "SummaryQuery",
    "aggregation",
]
