"""
Consensus Entities - Aggregate Stance of the Evidence

``ConfidenceLevel`` is ordered (``VERY_LOW < LOW < MODERATE < HIGH``) so
callers can compare levels directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .research import StudyDesign


class EvidencePosition(Enum):
    SUPPORTING = "supporting"
    NEUTRAL = "neutral"
    CONTRADICTING = "contradicting"


class QuestionType(Enum):
    YES_NO = "yes_no"
    COMPARATIVE = "comparative"
    DESCRIPTIVE = "descriptive"


class ConfidenceLevel(Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return list(ConfidenceLevel).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ConfidenceLevel):
            return NotImplemented
        return self.rank <= other.rank


@dataclass
class ConsensusDistribution:
    """Raw stance counts."""

    supporting: int = 0
    neutral: int = 0
    contradicting: int = 0

    @property
    def total(self) -> int:
        return self.supporting + self.neutral + self.contradicting

    def add(self, position: EvidencePosition) -> None:
        setattr(self, position.value, getattr(self, position.value) + 1)

    def to_dict(self) -> dict[str, int]:
        return {
            "supporting": self.supporting,
            "neutral": self.neutral,
            "contradicting": self.contradicting,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsensusDistribution:
        return cls(
            supporting=data.get("supporting", 0),
            neutral=data.get("neutral", 0),
            contradicting=data.get("contradicting", 0),
        )


@dataclass
class EvidenceBreakdown:
    """Stance counts for one study design."""

    study_type: StudyDesign
    supporting: int = 0
    neutral: int = 0
    contradicting: int = 0

    @property
    def count(self) -> int:
        return self.supporting + self.neutral + self.contradicting

    def to_dict(self) -> dict[str, Any]:
        return {
            "study_type": self.study_type.value,
            "supporting": self.supporting,
            "neutral": self.neutral,
            "contradicting": self.contradicting,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceBreakdown:
        return cls(
            study_type=StudyDesign(data["study_type"]),
            supporting=data.get("supporting", 0),
            neutral=data.get("neutral", 0),
            contradicting=data.get("contradicting", 0),
        )


@dataclass
class ConsensusMetrics:
    has_rcts: bool = False
    has_meta_analyses: bool = False
    average_study_quality: float = 0.0
    total_sample_size: int | None = None
    recent_studies_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_rcts": self.has_rcts,
            "has_meta_analyses": self.has_meta_analyses,
            "average_study_quality": round(self.average_study_quality, 2),
            "total_sample_size": self.total_sample_size,
            "recent_studies_count": self.recent_studies_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsensusMetrics:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class ConsensusData:
    question: str
    question_type: QuestionType
    distribution: ConsensusDistribution
    percentages: dict[str, int]
    breakdown: list[EvidenceBreakdown]
    confidence: ConfidenceLevel
    confidence_reason: str
    total_studies: int
    metrics: ConsensusMetrics
    grade: str = "D"
    summary: str = ""
    key_supporting: list[str] = field(default_factory=list)
    key_contradicting: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "question_type": self.question_type.value,
            "distribution": self.distribution.to_dict(),
            "percentages": dict(self.percentages),
            "breakdown": [b.to_dict() for b in self.breakdown],
            "confidence": self.confidence.value,
            "confidence_reason": self.confidence_reason,
            "total_studies": self.total_studies,
            "metrics": self.metrics.to_dict(),
            "grade": self.grade,
            "summary": self.summary,
            "key_supporting": list(self.key_supporting),
            "key_contradicting": list(self.key_contradicting),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsensusData:
        return cls(
            question=data["question"],
            question_type=QuestionType(data["question_type"]),
            distribution=ConsensusDistribution.from_dict(data["distribution"]),
            percentages=dict(data.get("percentages", {})),
            breakdown=[EvidenceBreakdown.from_dict(b) for b in data.get("breakdown", [])],
            confidence=ConfidenceLevel(data["confidence"]),
            confidence_reason=data.get("confidence_reason", ""),
            total_studies=data.get("total_studies", 0),
            metrics=ConsensusMetrics.from_dict(data.get("metrics", {})),
            grade=data.get("grade", "D"),
            summary=data.get("summary", ""),
            key_supporting=list(data.get("key_supporting", [])),
            key_contradicting=list(data.get("key_contradicting", [])),
        )
