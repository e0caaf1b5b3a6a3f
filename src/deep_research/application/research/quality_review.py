"""
Quality Review Loop

Scores a synthesis draft on five dimensions (each 0-100) and revises it
until the session's quality threshold is met or the revision budget runs
out.

Dimensions and weights:
    coverage           0.25  perspectives whose section cites something
    evidence_quality   0.25  study-design strength and peer review of cited sources
    balance            0.20  how evenly citations spread over perspectives
    recency            0.10  share of cited sources from the last five years
    citation_accuracy  0.20  markers that resolve to session sources

Running out of revisions is not a failure: the best draft is returned with
its own review feedback left unresolved.
"""

from __future__ import annotations

import logging
from typing import Protocol

from deep_research.domain.entities import (
    CitationType,
    FeedbackSeverity,
    FeedbackType,
    QualityScores,
    ResearchSource,
    ReviewFeedback,
    Synthesis,
)

from .synthesis import CONFLICTING_EVIDENCE, RECENT_YEARS, SynthesisBuilder, SynthesisContext

logger = logging.getLogger(__name__)

DIMENSION_WEIGHTS: dict[str, float] = {
    "coverage": 0.25,
    "evidence_quality": 0.25,
    "balance": 0.20,
    "recency": 0.10,
    "citation_accuracy": 0.20,
}

FEEDBACK_THRESHOLD = 70.0

DIMENSION_FEEDBACK: dict[str, tuple[FeedbackType, str, list[str]]] = {
    "coverage": (
        FeedbackType.MISSING_COVERAGE,
        "Some perspectives are not supported by any cited source",
        ["Cite more sources per perspective", "Search additional databases for thin perspectives"],
    ),
    "evidence_quality": (
        FeedbackType.INSUFFICIENT_EVIDENCE,
        "Cited evidence relies on weak study designs",
        ["Prefer meta-analyses, systematic reviews and RCTs", "Flag findings based on case reports"],
    ),
    "balance": (
        FeedbackType.BIAS,
        "Citations concentrate on a single perspective",
        ["Cite sources for under-represented perspectives"],
    ),
    "recency": (
        FeedbackType.OUTDATED_SOURCES,
        "Few cited sources are recent",
        ["Prefer studies from the last five years"],
    ),
    "citation_accuracy": (
        FeedbackType.UNSUPPORTED_CLAIM,
        "Claims are missing citations or cite unknown sources",
        ["Attach a source marker to every claim", "Remove markers that do not resolve"],
    ),
}


def _severity(score: float) -> FeedbackSeverity:
    if score < 40:
        return FeedbackSeverity.CRITICAL
    if score < 55:
        return FeedbackSeverity.MAJOR
    return FeedbackSeverity.MINOR


class SynthesisReviewer(Protocol):
    async def review(
        self, synthesis: Synthesis, context: SynthesisContext
    ) -> tuple[QualityScores, list[ReviewFeedback]]: ...


class QualityReviewer:
    """Heuristic reviewer; deterministic for a given draft and context."""

    def __init__(self, weights: dict[str, float] | None = None):
        self._weights = weights or DIMENSION_WEIGHTS

    async def review(
        self, synthesis: Synthesis, context: SynthesisContext
    ) -> tuple[QualityScores, list[ReviewFeedback]]:
        scores = self.score(synthesis, context)
        return scores, self.feedback(scores, synthesis, context)

    # =========================================================================
    # Scoring
    # =========================================================================

    def score(self, synthesis: Synthesis, context: SynthesisContext) -> QualityScores:
        cited = [s for s in (context.source(i) for i in synthesis.cited_source_ids) if s is not None]
        scores = QualityScores(
            coverage=self._coverage(synthesis, context),
            evidence_quality=self._evidence_quality(cited),
            balance=self._balance(synthesis, context),
            recency=self._recency(cited, context.year),
            citation_accuracy=self._citation_accuracy(synthesis, context),
        )
        scores.overall = sum(self._weights[name] * value for name, value in scores.dimensions().items())
        return scores

    @staticmethod
    def _perspective_citations(synthesis: Synthesis, context: SynthesisContext) -> list[int]:
        counts = []
        for perspective in context.perspectives:
            section = synthesis.section(perspective.name)
            counts.append(len(section.cited_ids) if section else 0)
        return counts

    def _coverage(self, synthesis: Synthesis, context: SynthesisContext) -> float:
        counts = self._perspective_citations(synthesis, context)
        if not counts:
            return 100.0 if synthesis.citation_count else 0.0
        return 100.0 * sum(1 for c in counts if c > 0) / len(counts)

    @staticmethod
    def _evidence_quality(cited: list[ResearchSource]) -> float:
        if not cited:
            return 0.0
        design = sum(s.quality.design_score if s.quality else 1 for s in cited) / len(cited)
        reviewed = sum(1 for s in cited if s.quality and s.quality.peer_reviewed) / len(cited)
        return min(100.0, 70.0 * design / 10 + 30.0 * reviewed)

    def _balance(self, synthesis: Synthesis, context: SynthesisContext) -> float:
        counts = self._perspective_citations(synthesis, context)
        total = sum(counts)
        if total == 0:
            return 0.0
        if len(counts) <= 1:
            return 100.0
        even = 1 / len(counts)
        excess = max(counts) / total - even
        return 100.0 * (1 - excess / (1 - even))

    @staticmethod
    def _recency(cited: list[ResearchSource], year: int) -> float:
        dated = [s for s in cited if s.year]
        if not dated:
            return 0.0
        recent = sum(1 for s in dated if s.year >= year - RECENT_YEARS) / len(dated)
        # Half of the citations being recent is already full marks
        return 100.0 * min(1.0, recent / 0.5)

    @staticmethod
    def _citation_accuracy(synthesis: Synthesis, context: SynthesisContext) -> float:
        markers = [m for section in synthesis.sections for m in section.cited_ids]
        if not markers:
            return 0.0
        known = {s.session_id for s in context.sources}
        return 100.0 * sum(1 for m in markers if m in known) / len(markers)

    # =========================================================================
    # Feedback
    # =========================================================================

    @staticmethod
    def feedback(scores: QualityScores, synthesis: Synthesis, context: SynthesisContext) -> list[ReviewFeedback]:
        items = []
        for name, value in scores.dimensions().items():
            if value >= FEEDBACK_THRESHOLD:
                continue
            feedback_type, description, suggestions = DIMENSION_FEEDBACK[name]
            items.append(
                ReviewFeedback(
                    type=feedback_type,
                    severity=_severity(value),
                    description=f"{description} ({name} {value:.0f}/100)",
                    suggestions=list(suggestions),
                )
            )

        disputes = context.citation_graph.edges_of_type(CitationType.DISPUTING)
        if disputes and synthesis.section(CONFLICTING_EVIDENCE) is None:
            items.append(
                ReviewFeedback(
                    type=FeedbackType.CONTRADICTION,
                    severity=FeedbackSeverity.MAJOR,
                    description=f"{len(disputes)} disputing citation relationships are not discussed",
                    suggestions=["Add a section on conflicting evidence"],
                    location=CONFLICTING_EVIDENCE,
                )
            )
        return items


class ReviewLoop:
    """
    Bounded build → review → revise cycle.

    Usage:
        loop = ReviewLoop(SynthesisBuilder(), QualityReviewer(), threshold=80, iteration_limit=2)
        synthesis = await loop.run(context)
    """

    def __init__(
        self,
        builder: SynthesisBuilder,
        reviewer: SynthesisReviewer,
        threshold: float,
        iteration_limit: int,
    ):
        self._builder = builder
        self._reviewer = reviewer
        self._threshold = threshold
        self._iteration_limit = iteration_limit

    async def run(self, context: SynthesisContext) -> Synthesis:
        options = self._builder.default_options
        draft = self._builder.build(context, options)
        scores, feedback = await self._reviewer.review(draft, context)
        rounds: list[tuple[Synthesis, QualityScores, list[ReviewFeedback]]] = [(draft, scores, feedback)]

        while scores.overall < self._threshold and len(rounds) - 1 < self._iteration_limit:
            options = self._builder.adjust(options, feedback)
            draft = self._builder.build(context, options)
            scores, feedback = await self._reviewer.review(draft, context)
            rounds.append((draft, scores, feedback))
            logger.info(f"Revision {len(rounds) - 1}: overall {scores.overall:.1f} (threshold {self._threshold})")

        # Ties go to the later draft
        best_index = max(range(len(rounds)), key=lambda i: (rounds[i][1].overall, i))
        best, best_scores, best_feedback = rounds[best_index]

        # Each revision leading up to the returned draft acted on the round before it
        history: list[ReviewFeedback] = []
        for _, _, items in rounds[:best_index]:
            for item in items:
                item.resolved = True
            history.extend(items)

        best.quality_score = best_scores
        best.revision_count = best_index
        best.review_feedback = history + best_feedback
        if best_scores.overall < self._threshold:
            logger.info(
                f"Revision budget spent at {best_scores.overall:.1f} < {self._threshold}; "
                f"{len(best_feedback)} feedback items unresolved"
            )
        return best
