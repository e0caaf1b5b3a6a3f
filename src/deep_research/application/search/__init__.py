"""
Search application services.

Contains:
- result_aggregator: dedup / merge / rank over per-source results
- unified_search: concurrent fan-out across adapters with per-source errors
"""

from .result_aggregator import AggregationStats, RankingConfig, ResultAggregator
from .unified_search import UnifiedSearchService

__all__ = [
    "AggregationStats",
    "RankingConfig",
    "ResultAggregator",
    "UnifiedSearchService",
]
