"""
Perspective generation and clarifying questions.

Perspectives are the first level of the exploration tree: ``breadth`` of them
are explored in parallel. The built-in generator is template based; anything
with a ``generate(topic, count)`` method can replace it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from deep_research.domain.entities import Perspective

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerspectiveTemplate:
    id: str
    name: str
    description: str
    icon: str
    questions: tuple[str, ...]
    strategies: tuple[str, ...]

    def build(self, topic: str, suffix: str = "") -> Perspective:
        return Perspective(
            id=f"{self.id}{suffix}",
            name=f"{self.name}{' ' + suffix.lstrip('-') if suffix else ''}",
            description=self.description,
            icon=self.icon,
            questions=list(self.questions),
            search_strategies=[s.format(topic=topic) for s in self.strategies],
        )


PERSPECTIVE_TEMPLATES: tuple[PerspectiveTemplate, ...] = (
    PerspectiveTemplate(
        id="clinical-outcomes",
        name="Clinical Outcomes",
        description="Examining patient outcomes, efficacy, and clinical trials",
        icon="🏥",
        questions=(
            "What are the clinical efficacy outcomes?",
            "What trial data exists?",
            "How do outcomes compare to existing treatments?",
        ),
        strategies=("{topic} clinical outcomes efficacy trials", "{topic} RCT efficacy"),
    ),
    PerspectiveTemplate(
        id="mechanisms",
        name="Biological Mechanisms",
        description="Understanding underlying molecular and cellular mechanisms",
        icon="🧬",
        questions=(
            "What are the molecular mechanisms?",
            "What cellular pathways are involved?",
            "What is the mechanism of action?",
        ),
        strategies=("{topic} mechanism pathway molecular", "{topic} cellular signaling"),
    ),
    PerspectiveTemplate(
        id="epidemiology",
        name="Epidemiology & Population Health",
        description="Population-level patterns, risk factors, and public health implications",
        icon="📊",
        questions=(
            "What is the population prevalence?",
            "What are the risk factors?",
            "What are the public health implications?",
        ),
        strategies=("{topic} epidemiology prevalence incidence", "{topic} population risk factors"),
    ),
    PerspectiveTemplate(
        id="methodology",
        name="Research Methodology",
        description="Examining research methods, study design, and measurement approaches",
        icon="🔬",
        questions=(
            "What study designs are used?",
            "How is this measured or assessed?",
            "What are the methodological considerations?",
        ),
        strategies=("{topic} methodology study design", "{topic} measurement validation"),
    ),
    PerspectiveTemplate(
        id="safety",
        name="Safety & Adverse Effects",
        description="Investigating safety profiles, adverse events, and contraindications",
        icon="⚠️",
        questions=(
            "What are the safety concerns?",
            "What adverse effects have been reported?",
            "What are the contraindications?",
        ),
        strategies=("{topic} safety adverse effects", "{topic} side effects toxicity"),
    ),
    PerspectiveTemplate(
        id="recent-advances",
        name="Recent Advances",
        description="Emerging findings, novel approaches, and open directions",
        icon="🚀",
        questions=(
            "What has changed in the last few years?",
            "Which novel approaches are being tested?",
            "What questions remain open?",
        ),
        strategies=("{topic} recent advances novel", "{topic} emerging future directions"),
    ),
)

RELATED_ASPECTS = PerspectiveTemplate(
    id="related-aspects",
    name="Related Aspects",
    description="Adjacent questions not covered by the other perspectives",
    icon="🔎",
    questions=(
        "Which related topics are studied together with this one?",
        "Which populations or settings are under-studied?",
        "What do review articles list as related work?",
    ),
    strategies=("{topic} review", "{topic} related factors"),
)


class PerspectiveProvider(Protocol):
    def generate(self, topic: str, count: int) -> list[Perspective]: ...


class PerspectiveGenerator:
    """Template-based perspectives, ``count`` of them in fixed order."""

    def __init__(self, templates: tuple[PerspectiveTemplate, ...] = PERSPECTIVE_TEMPLATES):
        self._templates = templates

    def generate(self, topic: str, count: int) -> list[Perspective]:
        perspectives = [t.build(topic) for t in self._templates[:count]]
        extra = count - len(perspectives)
        for n in range(1, extra + 1):
            perspectives.append(RELATED_ASPECTS.build(topic, suffix=f"-{n}"))
        logger.debug(f"Generated {len(perspectives)} perspectives for {topic!r}")
        return perspectives


# Words that leave a research topic open to more than one reading
_VAGUE_WORDS = {"effect", "effects", "impact", "role", "use", "treatment", "therapy", "outcomes"}


def clarifying_questions(topic: str) -> list[str]:
    """
    Questions that would narrow an under-specified topic.

    Always asks for population and time frame; short or vague topics also
    get a question about the exact intervention or outcome of interest.
    """
    words = [w.strip(",.?").lower() for w in topic.split()]
    questions = [
        "Which population or setting should the research focus on?",
        "Is there a publication period to restrict the search to?",
    ]
    if len(words) < 4 or _VAGUE_WORDS.intersection(words):
        questions.insert(0, "Which specific intervention, exposure or outcome is of most interest?")
    return questions
