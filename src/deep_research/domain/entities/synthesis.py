"""
Synthesis Entities - Sectioned Narrative, Quality Scores, Review Feedback

Sections cite sources with ``[src-N]`` markers that refer to
``ResearchSource.session_id``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

CITATION_MARKER = re.compile(r"\[(src-\d+)\]")


class FeedbackType(Enum):
    MISSING_COVERAGE = "missing_coverage"
    UNSUPPORTED_CLAIM = "unsupported_claim"
    CONTRADICTION = "contradiction"
    BIAS = "bias"
    INSUFFICIENT_EVIDENCE = "insufficient_evidence"
    OUTDATED_SOURCES = "outdated_sources"


class FeedbackSeverity(Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


@dataclass
class ReviewFeedback:
    type: FeedbackType
    severity: FeedbackSeverity
    description: str
    suggestions: list[str] = field(default_factory=list)
    location: str | None = None
    resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "location": self.location,
            "suggestions": list(self.suggestions),
            "resolved": self.resolved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewFeedback:
        return cls(
            type=FeedbackType(data["type"]),
            severity=FeedbackSeverity(data["severity"]),
            description=data.get("description", ""),
            suggestions=list(data.get("suggestions", [])),
            location=data.get("location"),
            resolved=data.get("resolved", False),
        )


@dataclass
class QualityScores:
    """Per-dimension scores in [0, 100] plus the weighted overall score."""

    coverage: float = 0.0
    evidence_quality: float = 0.0
    balance: float = 0.0
    recency: float = 0.0
    citation_accuracy: float = 0.0
    overall: float = 0.0

    def dimensions(self) -> dict[str, float]:
        return {
            "coverage": self.coverage,
            "evidence_quality": self.evidence_quality,
            "balance": self.balance,
            "recency": self.recency,
            "citation_accuracy": self.citation_accuracy,
        }

    def to_dict(self) -> dict[str, float]:
        return {k: round(v, 1) for k, v in {**self.dimensions(), "overall": self.overall}.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QualityScores:
        return cls(**{k: float(data.get(k, 0.0)) for k in cls.__dataclass_fields__})


@dataclass
class SynthesisSection:
    title: str
    content: str
    source_ids: list[str] = field(default_factory=list)
    perspective_ids: list[str] = field(default_factory=list)

    @property
    def cited_ids(self) -> list[str]:
        """Source ids referenced by markers in the content, in order."""
        return list(dict.fromkeys(CITATION_MARKER.findall(self.content)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "source_ids": list(self.source_ids),
            "perspective_ids": list(self.perspective_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SynthesisSection:
        return cls(
            title=data["title"],
            content=data.get("content", ""),
            source_ids=list(data.get("source_ids", [])),
            perspective_ids=list(data.get("perspective_ids", [])),
        )


@dataclass
class Synthesis:
    sections: list[SynthesisSection] = field(default_factory=list)
    quality_score: QualityScores | None = None
    review_feedback: list[ReviewFeedback] = field(default_factory=list)
    revision_count: int = 0

    @property
    def content(self) -> str:
        return "\n\n".join(f"## {s.title}\n\n{s.content}" for s in self.sections)

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def cited_source_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for section in self.sections:
            for source_id in section.cited_ids:
                seen.setdefault(source_id, None)
        return list(seen)

    @property
    def citation_count(self) -> int:
        return len(self.cited_source_ids)

    @property
    def unresolved_feedback(self) -> list[ReviewFeedback]:
        return [f for f in self.review_feedback if not f.resolved]

    def section(self, title: str) -> SynthesisSection | None:
        return next((s for s in self.sections if s.title == title), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "sections": [s.to_dict() for s in self.sections],
            "quality_score": self.quality_score.to_dict() if self.quality_score else None,
            "review_feedback": [f.to_dict() for f in self.review_feedback],
            "revision_count": self.revision_count,
            "word_count": self.word_count,
            "citation_count": self.citation_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Synthesis:
        score = data.get("quality_score")
        return cls(
            sections=[SynthesisSection.from_dict(s) for s in data.get("sections", [])],
            quality_score=QualityScores.from_dict(score) if score else None,
            review_feedback=[ReviewFeedback.from_dict(f) for f in data.get("review_feedback", [])],
            revision_count=data.get("revision_count", 0),
        )
