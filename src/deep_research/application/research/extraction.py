"""
Text Extraction Heuristics - Learnings, Directions, Study Quality

Pattern-based extraction over titles and abstracts:
1. Learnings: finding sentences (cue words such as "found", "associated")
2. New directions: frequent informative bigrams/terms not already in the topic
3. Study design: publication types first, then title/abstract patterns
4. Sample size, peer review and conflict-of-interest signals
5. Relevance of a record to a node topic

Architecture:
    Pure functions over SearchResult, no I/O. Every pattern list is a
    module constant so callers can inspect or extend it.
"""

from __future__ import annotations

import re
from collections import Counter

from deep_research.domain.entities import SearchResult, SourceQuality, StudyDesign
from deep_research.domain.entities.research import ARXIV

MAX_LEARNING_LENGTH = 200
MAX_LEARNINGS_PER_RECORD = 3

STOPWORDS = frozenset(
    """
    a about above after again against all also among an and any are as at be been before
    being between both but by can could did do does during each few for from further had
    has have having here how however if in into is it its itself may might more most no
    nor not of on once only or other our out over own same should so some such than that
    the their them then there these they this those through to too under until up upon
    very was we were what when where which while who whom why will with within without
    would yet using used use based study studies patients results result data methods
    method conclusion conclusions background objective objectives aim aims analysis
    compared among versus vs new paper article review effect effects associated
    """.split()
)

LEARNING_CUES = re.compile(
    r"\b(found|find|showed|shows|show|demonstrated|demonstrates|suggest|suggests|suggested|"
    r"associated|significant(?:ly)?|conclude[sd]?|indicate[sd]?|revealed|reduced|increased|"
    r"improved|identified)\b",
    re.IGNORECASE,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9])")
_WORD = re.compile(r"[a-z][a-z0-9\-]+")

# Publication types that settle the design on their own (first match wins)
PUBTYPE_DESIGNS: list[tuple[str, StudyDesign]] = [
    ("meta-analysis", StudyDesign.META_ANALYSIS),
    ("systematic review", StudyDesign.SYSTEMATIC_REVIEW),
    ("randomized controlled trial", StudyDesign.RCT),
    ("clinical trial, phase iii", StudyDesign.RCT),
    ("observational study", StudyDesign.COHORT),
    ("case reports", StudyDesign.CASE_REPORT),
    ("editorial", StudyDesign.EXPERT_OPINION),
    ("comment", StudyDesign.EXPERT_OPINION),
    ("letter", StudyDesign.EXPERT_OPINION),
    ("review", StudyDesign.NARRATIVE_REVIEW),
]

# Title/abstract patterns, strongest design first
TEXT_DESIGN_PATTERNS: list[tuple[re.Pattern[str], StudyDesign]] = [
    (re.compile(r"\bmeta[- ]?analys[ie]s\b", re.IGNORECASE), StudyDesign.META_ANALYSIS),
    (re.compile(r"\bsystematic(?:al)?\s+review\b", re.IGNORECASE), StudyDesign.SYSTEMATIC_REVIEW),
    (
        re.compile(r"\brandomi[sz]ed\b.*\b(?:trial|study)\b|\bRCTs?\b", re.IGNORECASE),
        StudyDesign.RCT,
    ),
    (re.compile(r"\b(?:cohort|prospective|longitudinal)\b", re.IGNORECASE), StudyDesign.COHORT),
    (re.compile(r"\bcase[- ]control\b", re.IGNORECASE), StudyDesign.CASE_CONTROL),
    (re.compile(r"\bcross[- ]sectional\b", re.IGNORECASE), StudyDesign.CROSS_SECTIONAL),
    (re.compile(r"\bcase series\b", re.IGNORECASE), StudyDesign.CASE_SERIES),
    (re.compile(r"\bcase report\b|\bwe (?:report|present) a case\b", re.IGNORECASE), StudyDesign.CASE_REPORT),
    (re.compile(r"\b(?:narrative |literature )?review\b", re.IGNORECASE), StudyDesign.NARRATIVE_REVIEW),
]

SAMPLE_SIZE_PATTERNS = [
    re.compile(r"\b[nN]\s*=\s*(\d[\d,]*)"),
    re.compile(
        r"\b(\d[\d,]*)\s+(?:patients|participants|subjects|individuals|adults|children|women|men|cases)\b",
        re.IGNORECASE,
    ),
]

CONFLICT_PATTERN = re.compile(
    r"\b(?:conflicts? of interests?|competing interests?)\b|"
    r"\b(?:funded|sponsored) by\b[^.]*\b(?:pharmaceuticals?|inc|ltd|corporation)\b",
    re.IGNORECASE,
)
_NEGATION = re.compile(r"\b(?:no|none|nothing|not)\b", re.IGNORECASE)

PREPRINT_MARKERS = ("preprint", "posted-content")


# =============================================================================
# Tokenisation
# =============================================================================


def tokenize(text: str) -> list[str]:
    """Lower-cased informative words (stopwords and short tokens removed)."""
    return [w for w in _WORD.findall(text.lower()) if len(w) > 2 and w not in STOPWORDS]


def claim_terms(text: str) -> set[str]:
    return set(tokenize(text))


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text or "") if s.strip()]


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[: limit - 3].rsplit(" ", 1)[0]
    return f"{cut}..."


# =============================================================================
# Learnings / Directions
# =============================================================================


def extract_learnings(
    text: str,
    max_items: int = MAX_LEARNINGS_PER_RECORD,
    max_length: int = MAX_LEARNING_LENGTH,
) -> list[str]:
    """Finding sentences from an abstract, in order of appearance."""
    learnings = []
    for sentence in split_sentences(text):
        if LEARNING_CUES.search(sentence):
            learnings.append(_truncate(sentence, max_length))
            if len(learnings) >= max_items:
                break
    return learnings


def extract_new_directions(results: list[SearchResult], topic: str, max_items: int = 5) -> list[str]:
    """
    Follow-up sub-topics from a batch of records.

    Bigrams seen in at least two records rank first, then single terms;
    anything whose words are already in the topic is skipped.
    """
    topic_words = set(tokenize(topic))
    bigrams: Counter[str] = Counter()
    terms: Counter[str] = Counter()
    for result in results:
        words = tokenize(f"{result.title}. {result.abstract}")
        # Count once per record so one long abstract cannot dominate
        bigrams.update({f"{a} {b}" for a, b in zip(words, words[1:], strict=False) if a != b})
        terms.update(set(words))

    directions: list[str] = []
    candidates = [p for p, n in bigrams.most_common() if n >= 2] + [t for t, n in terms.most_common() if n >= 2]
    for phrase in candidates:
        if set(phrase.split()) & topic_words:
            continue
        if any(phrase in existing for existing in directions):
            continue
        directions.append(phrase)
        if len(directions) >= max_items:
            break
    return [f"{topic} {phrase}" for phrase in directions]


# =============================================================================
# Quality
# =============================================================================


def classify_study_design(result: SearchResult) -> StudyDesign:
    pub_types = [p.lower() for p in result.publication_types]
    for marker, design in PUBTYPE_DESIGNS:
        if any(marker in p for p in pub_types):
            return design

    text = f"{result.title}. {result.abstract}"
    for pattern, design in TEXT_DESIGN_PATTERNS:
        if pattern.search(text):
            return design
    return StudyDesign.OTHER


def extract_sample_size(text: str) -> int | None:
    """Largest participant count mentioned, if any."""
    sizes = []
    for pattern in SAMPLE_SIZE_PATTERNS:
        for match in pattern.finditer(text or ""):
            try:
                sizes.append(int(match.group(1).replace(",", "")))
            except ValueError:
                continue
    return max(sizes) if sizes else None


def discloses_conflict(text: str) -> bool:
    """True when a competing-interest or industry-funding statement is not negated."""
    for match in CONFLICT_PATTERN.finditer(text):
        window = text[max(0, match.start() - 30) : match.end() + 15]
        if not _NEGATION.search(window):
            return True
    return False


def is_peer_reviewed(result: SearchResult) -> bool | None:
    if result.source == ARXIV or (result.arxiv_id and not result.journal):
        return False
    if any(m in p.lower() for p in result.publication_types for m in PREPRINT_MARKERS):
        return False
    if result.journal:
        return True
    return None


def assess_quality(result: SearchResult) -> SourceQuality:
    text = f"{result.title}. {result.abstract}"
    conflict = discloses_conflict(result.abstract) if result.abstract else None
    return SourceQuality(
        study_design=classify_study_design(result),
        sample_size=extract_sample_size(text),
        peer_reviewed=is_peer_reviewed(result),
        has_conflict_of_interest=conflict,
    )


# =============================================================================
# Relevance
# =============================================================================


def relevance_score(result: SearchResult, topic: str) -> float:
    """
    Share of topic terms covered, weighted by field.

    title 0.5 + abstract 0.3 + keywords/categories 0.2, in [0, 1].
    """
    terms = set(tokenize(topic))
    if not terms:
        return 0.0

    def coverage(text: str) -> float:
        words = set(tokenize(text))
        return len(terms & words) / len(terms)

    keywords = " ".join(result.keywords + result.categories)
    score = 0.5 * coverage(result.title) + 0.3 * coverage(result.abstract) + 0.2 * coverage(keywords)
    return round(min(1.0, score), 4)
