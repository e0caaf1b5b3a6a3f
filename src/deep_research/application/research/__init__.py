"""
Deep research orchestration.

Contains:
- engine: session state machine (plan → research → analyze → review → synthesize)
- exploration: level-by-level tree expansion under source and time budgets
- source_pool: cross-node deduplication of collected sources
- citation_graph: inferred citation relationships and clusters
- consensus: stance tally, percentages, confidence and grade
- synthesis / quality_review: draft building and the bounded review loop
- events: progress events for subscribers
"""

from .citation_graph import (
    CitationGraphBuilder,
    citation_metrics,
    classify_citation,
    context_distribution,
    graph_summary,
    key_sources,
)
from .consensus import (
    DEFAULT_THRESHOLDS,
    ConfidenceThresholds,
    assess_confidence,
    calculate_consensus,
    calculate_consensus_percentage,
)
from .engine import ResearchEngine
from .events import EngineEvent, EventBus, EventType
from .exploration import ExplorationEngine
from .perspectives import PerspectiveGenerator, clarifying_questions
from .quality_review import QualityReviewer, ReviewLoop
from .source_pool import SourcePool
from .synthesis import DraftOptions, SynthesisBuilder, SynthesisContext, references

__all__ = [
    "ResearchEngine",
    "EngineEvent",
    "EventBus",
    "EventType",
    "ExplorationEngine",
    "SourcePool",
    "PerspectiveGenerator",
    "clarifying_questions",
    "CitationGraphBuilder",
    "citation_metrics",
    "classify_citation",
    "context_distribution",
    "graph_summary",
    "key_sources",
    "DEFAULT_THRESHOLDS",
    "ConfidenceThresholds",
    "assess_confidence",
    "calculate_consensus",
    "calculate_consensus_percentage",
    "DraftOptions",
    "SynthesisBuilder",
    "SynthesisContext",
    "references",
    "QualityReviewer",
    "ReviewLoop",
]
