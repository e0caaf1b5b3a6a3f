"""
Application Layer - Use Cases and Orchestration

Contains:
- search: unified multi-source search (fan-out, dedup, ranking)
- research: deep research engine and its stages
"""

from .research import EventBus, ResearchEngine
from .search import RankingConfig, ResultAggregator, UnifiedSearchService

__all__ = [
    # Search
    "UnifiedSearchService",
    "ResultAggregator",
    "RankingConfig",
    # Research
    "ResearchEngine",
    "EventBus",
]
