"""
Domain Layer - Core Business Logic

Contains:
- entities: search records, queries, research configuration, exploration
  tree, citation graph, consensus, synthesis and the research session
"""

from .entities import (
    ResearchConfig,
    ResearchMode,
    ResearchSession,
    ResearchSource,
    SearchResult,
    SessionStatus,
    Synthesis,
)

__all__ = [
    "SearchResult",
    "ResearchConfig",
    "ResearchMode",
    "ResearchSource",
    "ResearchSession",
    "SessionStatus",
    "Synthesis",
]
