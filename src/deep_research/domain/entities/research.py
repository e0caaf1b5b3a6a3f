"""
Research Configuration Entities - Modes, Presets, Perspectives, Sources

Key Entities:
    - ResearchMode: quick | standard | deep | exhaustive | systematic
    - ResearchConfig: every budget the engine honours (depth, breadth,
      source cap, revision budget, quality bar, time budget)
    - Perspective: a named angle on the topic with guiding questions
    - ResearchSource: a SearchResult adopted into a session

Example:
    >>> config = get_default_config("systematic")
    >>> config.depth, config.breadth, len(config.sources)
    (5, 6, 6)
    >>> config.with_overrides(max_sources=40).max_sources
    40
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any

from deep_research.core.exceptions import InvalidParameterError

from .article import SearchResult
from .query import YearRange

# Registered source ids
PUBMED = "pubmed"
ARXIV = "arxiv"
SEMANTIC_SCHOLAR = "semantic-scholar"
OPENALEX = "openalex"
CROSSREF = "crossref"
EUROPE_PMC = "europe-pmc"
CORE = "core"

KNOWN_SOURCES: tuple[str, ...] = (
    PUBMED,
    ARXIV,
    SEMANTIC_SCHOLAR,
    OPENALEX,
    CROSSREF,
    EUROPE_PMC,
    CORE,
)

# Session time budget bounds (seconds)
_BASE_TIMEOUT = 60.0
_TIMEOUT_PER_NODE = 5.0
_MAX_TIMEOUT = 600.0


class ResearchMode(Enum):
    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"
    EXHAUSTIVE = "exhaustive"
    SYSTEMATIC = "systematic"


class ArticleType(Enum):
    """Article-type filter applied to a session."""

    ALL = "all"
    RCT = "rct"
    META_ANALYSIS = "meta-analysis"
    SYSTEMATIC_REVIEW = "systematic-review"
    COHORT = "cohort"
    CASE_CONTROL = "case-control"
    CASE_REPORT = "case-report"
    REVIEW = "review"
    PREPRINT = "preprint"


class StudyDesign(Enum):
    META_ANALYSIS = "meta-analysis"
    SYSTEMATIC_REVIEW = "systematic-review"
    RCT = "rct"
    COHORT = "cohort"
    CASE_CONTROL = "case-control"
    CROSS_SECTIONAL = "cross-sectional"
    CASE_SERIES = "case-series"
    CASE_REPORT = "case-report"
    NARRATIVE_REVIEW = "narrative-review"
    EXPERT_OPINION = "expert-opinion"
    OTHER = "other"


# Evidence hierarchy score per design, 10 = strongest
STUDY_DESIGN_SCORES: dict[StudyDesign, int] = {
    StudyDesign.META_ANALYSIS: 10,
    StudyDesign.SYSTEMATIC_REVIEW: 9,
    StudyDesign.RCT: 8,
    StudyDesign.COHORT: 6,
    StudyDesign.CASE_CONTROL: 5,
    StudyDesign.CROSS_SECTIONAL: 4,
    StudyDesign.CASE_SERIES: 3,
    StudyDesign.CASE_REPORT: 2,
    StudyDesign.NARRATIVE_REVIEW: 2,
    StudyDesign.EXPERT_OPINION: 1,
    StudyDesign.OTHER: 1,
}


def session_timeout_for(depth: int, breadth: int) -> float:
    """Overall session budget in seconds, growing with tree size."""
    return min(_BASE_TIMEOUT + depth * breadth * _TIMEOUT_PER_NODE, _MAX_TIMEOUT)


@dataclass(frozen=True)
class ResearchConfig:
    """Budgets and filters for one research session."""

    depth: int
    breadth: int
    max_sources: int
    iteration_limit: int
    quality_threshold: float
    sources: tuple[str, ...]
    date_range: YearRange | None = None
    article_types: tuple[ArticleType, ...] = (ArticleType.ALL,)
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.depth < 1:
            raise InvalidParameterError("depth", self.depth, "an integer >= 1")
        if self.breadth < 1:
            raise InvalidParameterError("breadth", self.breadth, "an integer >= 1")
        if self.max_sources < 1:
            raise InvalidParameterError("max_sources", self.max_sources, "an integer >= 1")
        if self.iteration_limit < 0:
            raise InvalidParameterError("iteration_limit", self.iteration_limit, "an integer >= 0")
        if not 0 <= self.quality_threshold <= 100:
            raise InvalidParameterError("quality_threshold", self.quality_threshold, "a value in [0, 100]")
        if not self.sources:
            raise InvalidParameterError("sources", self.sources, "at least one source id")
        unknown = [s for s in self.sources if s not in KNOWN_SOURCES]
        if unknown:
            raise InvalidParameterError("sources", unknown, f"ids from {', '.join(KNOWN_SOURCES)}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise InvalidParameterError("timeout_seconds", self.timeout_seconds, "a positive number")

    @property
    def effective_timeout(self) -> float:
        if self.timeout_seconds is not None:
            return self.timeout_seconds
        return session_timeout_for(self.depth, self.breadth)

    @property
    def per_iteration_limit(self) -> int:
        return max(1, self.max_sources // self.breadth)

    def with_overrides(self, **overrides: Any) -> ResearchConfig:
        """Replace individual fields, keeping the rest of the preset."""
        names = {f.name for f in fields(self)}
        for key in overrides:
            if key not in names:
                raise InvalidParameterError(key, overrides[key], f"one of {', '.join(sorted(names))}")
        coerced = dict(overrides)
        if "sources" in coerced:
            coerced["sources"] = tuple(coerced["sources"])
        if "article_types" in coerced:
            coerced["article_types"] = tuple(ArticleType(t) for t in coerced["article_types"])
        if isinstance(coerced.get("date_range"), (tuple, list)):
            start, end = coerced["date_range"]
            coerced["date_range"] = YearRange(start, end)
        return replace(self, **coerced)

    def to_dict(self) -> dict[str, Any]:
        return {
            "depth": self.depth,
            "breadth": self.breadth,
            "max_sources": self.max_sources,
            "iteration_limit": self.iteration_limit,
            "quality_threshold": self.quality_threshold,
            "sources": list(self.sources),
            "date_range": self.date_range.to_dict() if self.date_range else None,
            "article_types": [t.value for t in self.article_types],
            "timeout_seconds": self.timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResearchConfig:
        return cls(
            depth=data["depth"],
            breadth=data["breadth"],
            max_sources=data["max_sources"],
            iteration_limit=data["iteration_limit"],
            quality_threshold=data["quality_threshold"],
            sources=tuple(data["sources"]),
            date_range=YearRange.from_dict(data.get("date_range")),
            article_types=tuple(ArticleType(t) for t in data.get("article_types", ["all"])),
            timeout_seconds=data.get("timeout_seconds"),
        )


MODE_PRESETS: dict[ResearchMode, ResearchConfig] = {
    ResearchMode.QUICK: ResearchConfig(
        depth=1,
        breadth=2,
        max_sources=10,
        iteration_limit=1,
        quality_threshold=70,
        sources=(PUBMED, SEMANTIC_SCHOLAR),
    ),
    ResearchMode.STANDARD: ResearchConfig(
        depth=2,
        breadth=3,
        max_sources=25,
        iteration_limit=2,
        quality_threshold=80,
        sources=(PUBMED, SEMANTIC_SCHOLAR, ARXIV),
    ),
    ResearchMode.DEEP: ResearchConfig(
        depth=3,
        breadth=4,
        max_sources=50,
        iteration_limit=3,
        quality_threshold=85,
        sources=(PUBMED, SEMANTIC_SCHOLAR, ARXIV, CROSSREF),
    ),
    ResearchMode.EXHAUSTIVE: ResearchConfig(
        depth=4,
        breadth=5,
        max_sources=100,
        iteration_limit=4,
        quality_threshold=90,
        sources=(PUBMED, SEMANTIC_SCHOLAR, ARXIV, CROSSREF, EUROPE_PMC),
    ),
    ResearchMode.SYSTEMATIC: ResearchConfig(
        depth=5,
        breadth=6,
        max_sources=200,
        iteration_limit=5,
        quality_threshold=95,
        sources=(PUBMED, SEMANTIC_SCHOLAR, ARXIV, CROSSREF, EUROPE_PMC, CORE),
    ),
}


def get_default_config(mode: ResearchMode | str) -> ResearchConfig:
    """Preset configuration for a research mode."""
    try:
        mode = ResearchMode(mode)
    except ValueError:
        raise InvalidParameterError(
            "mode", mode, " | ".join(m.value for m in ResearchMode)
        ) from None
    return MODE_PRESETS[mode]


@dataclass
class Perspective:
    """A named angle of inquiry on the research topic."""

    id: str
    name: str
    description: str
    questions: list[str] = field(default_factory=list)
    search_strategies: list[str] = field(default_factory=list)
    icon: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "questions": list(self.questions),
            "search_strategies": list(self.search_strategies),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Perspective:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            questions=list(data.get("questions", [])),
            search_strategies=list(data.get("search_strategies", [])),
            icon=data.get("icon", ""),
        )


@dataclass
class SourceQuality:
    study_design: StudyDesign = StudyDesign.OTHER
    sample_size: int | None = None
    peer_reviewed: bool | None = None
    has_conflict_of_interest: bool | None = None

    @property
    def design_score(self) -> int:
        return STUDY_DESIGN_SCORES[self.study_design]

    def to_dict(self) -> dict[str, Any]:
        return {
            "study_design": self.study_design.value,
            "sample_size": self.sample_size,
            "peer_reviewed": self.peer_reviewed,
            "has_conflict_of_interest": self.has_conflict_of_interest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceQuality:
        return cls(
            study_design=StudyDesign(data.get("study_design", "other")),
            sample_size=data.get("sample_size"),
            peer_reviewed=data.get("peer_reviewed"),
            has_conflict_of_interest=data.get("has_conflict_of_interest"),
        )


@dataclass
class ResearchSource(SearchResult):
    """
    A SearchResult adopted into a research session.

    ``session_id`` is the record's identifier within its session (``src-N``),
    ``discovered_by`` the exploration node that first found it and
    ``discovered_at`` its discovery ordinal across the whole session.
    """

    session_id: str = ""
    discovered_by: str = ""
    discovered_at: int = 0
    relevance_score: float = 0.0
    quality: SourceQuality | None = None
    key_findings: list[str] = field(default_factory=list)
    linked_nodes: list[str] = field(default_factory=list)

    @classmethod
    def from_result(
        cls,
        result: SearchResult,
        *,
        session_id: str,
        discovered_by: str,
        discovered_at: int,
    ) -> ResearchSource:
        base = result.copy()
        values = {f.name: getattr(base, f.name) for f in fields(SearchResult)}
        return cls(
            **values,
            session_id=session_id,
            discovered_by=discovered_by,
            discovered_at=discovered_at,
            linked_nodes=[discovered_by],
        )

    @property
    def study_design(self) -> StudyDesign:
        return self.quality.study_design if self.quality else StudyDesign.OTHER

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            {
                "session_id": self.session_id,
                "discovered_by": self.discovered_by,
                "discovered_at": self.discovered_at,
                "relevance_score": round(self.relevance_score, 4),
                "quality": self.quality.to_dict() if self.quality else None,
                "key_findings": list(self.key_findings),
                "linked_nodes": list(self.linked_nodes),
            }
        )
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResearchSource:
        quality = data.get("quality")
        return cls(
            **cls._fields_from_dict(data),
            session_id=data.get("session_id", ""),
            discovered_by=data.get("discovered_by", ""),
            discovered_at=data.get("discovered_at", 0),
            relevance_score=data.get("relevance_score", 0.0),
            quality=SourceQuality.from_dict(quality) if quality else None,
            key_findings=list(data.get("key_findings", [])),
            linked_nodes=list(data.get("linked_nodes", [])),
        )
