"""
Consensus Calculation - Stance Tally, Percentages, Confidence, Grade

Confidence depends on study-design rigor and study count only, never on
how lopsided the percentages are:

    high      RCT or meta-analysis present, >= 20 studies
    moderate  RCT, meta-analysis or systematic review present, >= 10 studies
    very_low  fewer than 5 studies, or only case reports / case series / opinion
    low       everything else

Cutoffs live in ``ConfidenceThresholds`` and are passed explicitly.

Grade (A-D):
    A  >= 2 systematic reviews / meta-analyses
    B  >= 1 systematic review / meta-analysis, or >= 3 RCTs
    C  >= 1 RCT, or >= 3 cohort studies
    D  otherwise
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from deep_research.domain.entities import (
    STUDY_DESIGN_SCORES,
    ConfidenceLevel,
    ConsensusData,
    ConsensusDistribution,
    ConsensusMetrics,
    EvidenceBreakdown,
    EvidencePosition,
    QuestionType,
    ResearchSource,
    StudyDesign,
)

logger = logging.getLogger(__name__)

RECENT_YEARS = 5
KEY_STUDIES = 3

SUPPORTING_TERMS = (
    "effective",
    "beneficial",
    "improved",
    "significant improvement",
    "superior",
    "advantage",
)
DISPUTING_TERMS = (
    "ineffective",
    "no benefit",
    "no significant",
    "did not improve",
    "inferior",
    "disadvantage",
)

_SUPPORTING = re.compile(r"\b(?:" + "|".join(re.escape(t) for t in SUPPORTING_TERMS) + r")\b", re.IGNORECASE)
_DISPUTING = re.compile(r"\b(?:" + "|".join(re.escape(t) for t in DISPUTING_TERMS) + r")\b", re.IGNORECASE)

_YES_NO_START = re.compile(
    r"^\s*(?:is|are|does|do|did|can|could|should|will|would|has|have|was|were)\b", re.IGNORECASE
)
_COMPARATIVE = re.compile(r"\b(?:vs\.?|versus|compared (?:to|with)|better than|worse than|or)\b", re.IGNORECASE)

LOW_RIGOR_DESIGNS = frozenset({StudyDesign.CASE_REPORT, StudyDesign.CASE_SERIES, StudyDesign.EXPERT_OPINION})
REVIEW_DESIGNS = frozenset({StudyDesign.SYSTEMATIC_REVIEW, StudyDesign.META_ANALYSIS})


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Minimum study counts per confidence level."""

    high: int = 20
    moderate: int = 10
    low: int = 5


DEFAULT_THRESHOLDS = ConfidenceThresholds()


# =============================================================================
# Percentages
# =============================================================================


def calculate_consensus_percentage(distribution: ConsensusDistribution) -> dict[str, int]:
    """
    Integer percentages that sum to exactly 100 (0 each when empty).

    Each bucket is floored; the rounding remainder goes to the largest
    bucket (ties: supporting, neutral, contradicting).
    """
    counts = distribution.to_dict()
    total = sum(counts.values())
    if total <= 0:
        return {key: 0 for key in counts}

    percentages = {key: (100 * value) // total for key, value in counts.items()}
    remainder = 100 - sum(percentages.values())
    largest = max(counts, key=lambda key: counts[key])
    percentages[largest] += remainder
    return percentages


# =============================================================================
# Stance
# =============================================================================


def _question_terms(question: str) -> set[str]:
    return {w for w in re.findall(r"[a-z0-9\-]+", question.lower()) if len(w) > 3}


def polarity(text: str) -> int:
    """+1 for supporting wording, -1 for disputing wording, 0 when balanced."""
    disputing = len(_DISPUTING.findall(text))
    # "no significant improvement" must not count as an improvement
    supporting = len(_SUPPORTING.findall(_DISPUTING.sub(" ", text)))
    if supporting > disputing:
        return 1
    if disputing > supporting:
        return -1
    return 0


def classify_stance(source: ResearchSource, question: str) -> EvidencePosition:
    """
    Stance of one source toward *question*.

    The source has to mention at least two of the question's content words
    before its wording counts; otherwise it is neutral.
    """
    text = f"{source.title}. {source.abstract}"
    terms = _question_terms(question)
    lowered = text.lower()
    if sum(1 for t in terms if t in lowered) < 2:
        return EvidencePosition.NEUTRAL
    match polarity(text):
        case 1:
            return EvidencePosition.SUPPORTING
        case -1:
            return EvidencePosition.CONTRADICTING
        case _:
            return EvidencePosition.NEUTRAL


def detect_question_type(question: str) -> QuestionType:
    if _COMPARATIVE.search(question):
        return QuestionType.COMPARATIVE
    if _YES_NO_START.search(question):
        return QuestionType.YES_NO
    return QuestionType.DESCRIPTIVE


# =============================================================================
# Confidence / Grade
# =============================================================================


def _designs_present(breakdown: list[EvidenceBreakdown]) -> set[StudyDesign]:
    return {b.study_type for b in breakdown if b.count > 0}


def assess_confidence(
    breakdown: list[EvidenceBreakdown],
    total_studies: int,
    thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS,
) -> tuple[ConfidenceLevel, str]:
    """Confidence level and a one-line reason."""
    designs = _designs_present(breakdown)
    has_trials = bool(designs & {StudyDesign.RCT, StudyDesign.META_ANALYSIS})
    has_reviews = StudyDesign.SYSTEMATIC_REVIEW in designs

    if total_studies < thresholds.low:
        return ConfidenceLevel.VERY_LOW, f"Only {total_studies} studies found"
    if has_trials and total_studies >= thresholds.high:
        return (
            ConfidenceLevel.HIGH,
            f"{total_studies} studies including randomized trials or meta-analyses",
        )
    if (has_trials or has_reviews) and total_studies >= thresholds.moderate:
        return (
            ConfidenceLevel.MODERATE,
            f"{total_studies} studies with some randomized or systematic evidence",
        )
    if designs and designs <= LOW_RIGOR_DESIGNS:
        return ConfidenceLevel.VERY_LOW, "Evidence limited to case reports, case series or opinion"
    return ConfidenceLevel.LOW, f"{total_studies} studies without strong randomized evidence"


def evidence_grade(breakdown: list[EvidenceBreakdown]) -> str:
    counts = {b.study_type: b.count for b in breakdown}
    reviews = sum(counts.get(d, 0) for d in REVIEW_DESIGNS)
    rcts = counts.get(StudyDesign.RCT, 0)
    cohorts = counts.get(StudyDesign.COHORT, 0)
    if reviews >= 2:
        return "A"
    if reviews >= 1 or rcts >= 3:
        return "B"
    if rcts >= 1 or cohorts >= 3:
        return "C"
    return "D"


def consensus_summary(total: int, percentages: dict[str, int], confidence: ConfidenceLevel) -> str:
    support = percentages.get("supporting", 0)
    dispute = percentages.get("contradicting", 0)
    if support > 60:
        verdict = f"there is strong consensus supporting this claim ({support}% support)"
    elif support > 40:
        verdict = f"there is moderate support for this claim ({support}% support)"
    elif dispute > 60:
        verdict = f"there is strong consensus disputing this claim ({dispute}% dispute)"
    elif dispute > 40:
        verdict = f"there is moderate dispute of this claim ({dispute}% dispute)"
    else:
        verdict = "the evidence is mixed with no clear consensus"
    return f"Based on {total} studies, {verdict}. Confidence level: {confidence.value}."


# =============================================================================
# Calculator
# =============================================================================


def calculate_consensus(
    question: str,
    sources: list[ResearchSource],
    thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS,
    current_year: int | None = None,
) -> ConsensusData:
    """Tally the stance of every source toward *question*."""
    year = current_year or datetime.now(UTC).year
    distribution = ConsensusDistribution()
    breakdown: dict[StudyDesign, EvidenceBreakdown] = {}
    supporting: list[ResearchSource] = []
    contradicting: list[ResearchSource] = []

    for source in sources:
        position = classify_stance(source, question)
        distribution.add(position)
        design = source.study_design
        entry = breakdown.setdefault(design, EvidenceBreakdown(study_type=design))
        setattr(entry, position.value, getattr(entry, position.value) + 1)
        if position is EvidencePosition.SUPPORTING:
            supporting.append(source)
        elif position is EvidencePosition.CONTRADICTING:
            contradicting.append(source)

    # Strongest designs first
    ordered = sorted(breakdown.values(), key=lambda b: -STUDY_DESIGN_SCORES[b.study_type])
    total = len(sources)
    percentages = calculate_consensus_percentage(distribution)
    confidence, reason = assess_confidence(ordered, total, thresholds)

    sample_sizes = [s.quality.sample_size for s in sources if s.quality and s.quality.sample_size]
    designs = _designs_present(ordered)
    metrics = ConsensusMetrics(
        has_rcts=StudyDesign.RCT in designs,
        has_meta_analyses=StudyDesign.META_ANALYSIS in designs,
        average_study_quality=(
            sum(STUDY_DESIGN_SCORES[s.study_design] for s in sources) / total if total else 0.0
        ),
        total_sample_size=sum(sample_sizes) if sample_sizes else None,
        recent_studies_count=sum(1 for s in sources if s.year and s.year >= year - RECENT_YEARS),
    )

    def key_ids(group: list[ResearchSource]) -> list[str]:
        ranked = sorted(
            group,
            key=lambda s: (-STUDY_DESIGN_SCORES[s.study_design], -(s.citation_count or 0)),
        )
        return [s.session_id for s in ranked[:KEY_STUDIES]]

    logger.debug(f"Consensus for {question!r}: {distribution.to_dict()} -> {confidence.value}")
    return ConsensusData(
        question=question,
        question_type=detect_question_type(question),
        distribution=distribution,
        percentages=percentages,
        breakdown=ordered,
        confidence=confidence,
        confidence_reason=reason,
        total_studies=total,
        metrics=metrics,
        grade=evidence_grade(ordered),
        summary=consensus_summary(total, percentages, confidence),
        key_supporting=key_ids(supporting),
        key_contradicting=key_ids(contradicting),
    )
