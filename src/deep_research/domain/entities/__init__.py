"""
Domain Entities

Core business objects for unified search and deep research sessions.
"""

from __future__ import annotations

from .article import Author, SearchResult, normalize_doi, normalize_title
from .citation import CitationCluster, CitationEdge, CitationGraph, CitationNode, CitationType
from .consensus import (
    ConfidenceLevel,
    ConsensusData,
    ConsensusDistribution,
    ConsensusMetrics,
    EvidenceBreakdown,
    EvidencePosition,
    QuestionType,
)
from .query import (
    SearchQuery,
    SearchResponse,
    SourceError,
    UnifiedSearchOptions,
    UnifiedSearchResponse,
    YearRange,
)
from .research import (
    KNOWN_SOURCES,
    MODE_PRESETS,
    STUDY_DESIGN_SCORES,
    ArticleType,
    Perspective,
    ResearchConfig,
    ResearchMode,
    ResearchSource,
    SourceQuality,
    StudyDesign,
    get_default_config,
)
from .session import (
    Progress,
    ResearchSession,
    SessionError,
    SessionStatus,
    create_research_session,
)
from .synthesis import (
    FeedbackSeverity,
    FeedbackType,
    QualityScores,
    ReviewFeedback,
    Synthesis,
    SynthesisSection,
)
from .tree import ExplorationNode, ExplorationTree, IterationResult, NodeStatus

__all__ = [
    # Records
    "Author",
    "SearchResult",
    "normalize_doi",
    "normalize_title",
    # Queries
    "SearchQuery",
    "SearchResponse",
    "SourceError",
    "UnifiedSearchOptions",
    "UnifiedSearchResponse",
    "YearRange",
    # Configuration
    "KNOWN_SOURCES",
    "MODE_PRESETS",
    "STUDY_DESIGN_SCORES",
    "ArticleType",
    "Perspective",
    "ResearchConfig",
    "ResearchMode",
    "ResearchSource",
    "SourceQuality",
    "StudyDesign",
    "get_default_config",
    # Tree
    "ExplorationNode",
    "ExplorationTree",
    "IterationResult",
    "NodeStatus",
    # Citation graph
    "CitationCluster",
    "CitationEdge",
    "CitationGraph",
    "CitationNode",
    "CitationType",
    # Consensus
    "ConfidenceLevel",
    "ConsensusData",
    "ConsensusDistribution",
    "ConsensusMetrics",
    "EvidenceBreakdown",
    "EvidencePosition",
    "QuestionType",
    # Synthesis
    "FeedbackSeverity",
    "FeedbackType",
    "QualityScores",
    "ReviewFeedback",
    "Synthesis",
    "SynthesisSection",
    # Session
    "Progress",
    "ResearchSession",
    "SessionError",
    "SessionStatus",
    "create_research_session",
]
