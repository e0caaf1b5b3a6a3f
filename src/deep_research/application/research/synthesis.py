"""
Synthesis Builder - deterministic, template-based drafts.

Sections, in order:
    Overview
    one section per perspective
    Consensus                 (when consensus was computed)
    Conflicting Evidence      (when requested and disputing edges exist)
    Research Gaps

Every claim carries a ``[src-N]`` marker pointing at
``ResearchSource.session_id``. Reference formatting is left to the caller;
``references()`` returns CSL-shaped records for that purpose.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from deep_research.domain.entities import (
    CitationGraph,
    CitationType,
    ConsensusData,
    ExplorationTree,
    FeedbackType,
    NodeStatus,
    Perspective,
    ResearchSession,
    ResearchSource,
    ReviewFeedback,
    Synthesis,
    SynthesisSection,
)

logger = logging.getLogger(__name__)

OVERVIEW = "Overview"
CONSENSUS = "Consensus"
CONFLICTING_EVIDENCE = "Conflicting Evidence"
RESEARCH_GAPS = "Research Gaps"

RECENT_YEARS = 5
MIN_SOURCES_PER_PERSPECTIVE = 2


@dataclass
class SynthesisContext:
    """Everything a draft is built from (read-only view of a session)."""

    topic: str
    perspectives: list[Perspective]
    sources: list[ResearchSource]
    tree: ExplorationTree = field(default_factory=ExplorationTree)
    citation_graph: CitationGraph = field(default_factory=CitationGraph)
    consensus: ConsensusData | None = None
    current_year: int | None = None

    @classmethod
    def from_session(cls, session: ResearchSession) -> SynthesisContext:
        return cls(
            topic=session.topic,
            perspectives=list(session.perspectives),
            sources=list(session.sources),
            tree=session.tree,
            citation_graph=session.citation_graph,
            consensus=session.consensus,
        )

    @property
    def year(self) -> int:
        return self.current_year or datetime.now(UTC).year

    def source(self, session_source_id: str) -> ResearchSource | None:
        return next((s for s in self.sources if s.session_id == session_source_id), None)

    def sources_for_perspective(self, perspective_id: str) -> list[ResearchSource]:
        ids: dict[str, None] = {}
        for node in self.tree.nodes.values():
            if node.perspective_id == perspective_id:
                for source_id in node.source_ids:
                    ids.setdefault(source_id, None)
        return [s for s in (self.source(i) for i in ids) if s is not None]


@dataclass(frozen=True)
class DraftOptions:
    """Knobs a revision turns in response to review feedback."""

    sources_per_section: int = 3
    include_conflicts: bool = False
    prefer_recent: bool = False
    prefer_strong_designs: bool = False


class SynthesisBuilder:
    """
    Builds and revises ``Synthesis`` drafts.

    Usage:
        builder = SynthesisBuilder()
        draft = builder.build(SynthesisContext.from_session(session))
        options = builder.adjust(options, feedback)
        revised = builder.build(context, options)
    """

    def __init__(self, options: DraftOptions | None = None):
        self.default_options = options or DraftOptions()

    def build(self, context: SynthesisContext, options: DraftOptions | None = None) -> Synthesis:
        options = options or self.default_options
        sections = [self._overview(context, options)]
        for perspective in context.perspectives:
            sections.append(self._perspective_section(context, perspective, options))
        if context.consensus is not None:
            sections.append(self._consensus_section(context.consensus))
        if options.include_conflicts:
            conflicts = self._conflicts_section(context)
            if conflicts is not None:
                sections.append(conflicts)
        sections.append(self._gaps_section(context))
        logger.debug(f"Draft for {context.topic!r}: {len(sections)} sections, options {options}")
        return Synthesis(sections=sections)

    @staticmethod
    def adjust(options: DraftOptions, feedback: list[ReviewFeedback]) -> DraftOptions:
        """Options turned for every feedback type received."""
        for item in feedback:
            match item.type:
                case FeedbackType.CONTRADICTION:
                    options = replace(options, include_conflicts=True)
                case FeedbackType.OUTDATED_SOURCES:
                    options = replace(options, prefer_recent=True)
                case FeedbackType.INSUFFICIENT_EVIDENCE:
                    options = replace(options, prefer_strong_designs=True)
                case FeedbackType.MISSING_COVERAGE | FeedbackType.UNSUPPORTED_CLAIM | FeedbackType.BIAS:
                    options = replace(options, sources_per_section=options.sources_per_section + 2)
        return options

    # =========================================================================
    # Sections
    # =========================================================================

    @staticmethod
    def _rank(sources: list[ResearchSource], options: DraftOptions) -> list[ResearchSource]:
        def key(s: ResearchSource) -> tuple:
            design = s.quality.design_score if s.quality else 1
            if options.prefer_recent:
                return (-(s.year or 0), -s.relevance_score)
            if options.prefer_strong_designs:
                return (-design, -s.relevance_score)
            return (-s.relevance_score, -design, -(s.citation_count or 0))

        return sorted(sources, key=key)

    @staticmethod
    def _claim(source: ResearchSource) -> str:
        text = source.key_findings[0] if source.key_findings else source.title
        return f"{text.rstrip('. ')} [{source.session_id}]."

    def _overview(self, context: SynthesisContext, options: DraftOptions) -> SynthesisSection:
        sources = context.sources
        if not sources:
            return SynthesisSection(
                title=OVERVIEW,
                content=f"No sources were collected for {context.topic!r}.",
            )
        years = sorted(s.year for s in sources if s.year)
        databases = sorted({s.source for s in sources})
        period = f" published {years[0]}-{years[-1]}" if years else ""
        top = self._rank(sources, options)[: options.sources_per_section]
        lines = [
            f"This synthesis covers {len(sources)} sources{period} on {context.topic!r}, "
            f"drawn from {', '.join(databases)} and examined from "
            f"{len(context.perspectives)} perspectives.",
            "",
            *(f"- {self._claim(s)}" for s in top),
        ]
        return SynthesisSection(
            title=OVERVIEW,
            content="\n".join(lines),
            source_ids=[s.session_id for s in top],
            perspective_ids=[p.id for p in context.perspectives],
        )

    def _perspective_section(
        self,
        context: SynthesisContext,
        perspective: Perspective,
        options: DraftOptions,
    ) -> SynthesisSection:
        sources = self._rank(context.sources_for_perspective(perspective.id), options)
        chosen = sources[: options.sources_per_section]
        if not chosen:
            content = f"No sources were found addressing {perspective.description.lower()}."
        else:
            lines = [f"{perspective.description}."]
            lines.extend(f"- {self._claim(s)}" for s in chosen)
            content = "\n".join(lines)
        return SynthesisSection(
            title=perspective.name,
            content=content,
            source_ids=[s.session_id for s in chosen],
            perspective_ids=[perspective.id],
        )

    @staticmethod
    def _consensus_section(consensus: ConsensusData) -> SynthesisSection:
        lines = [consensus.summary, f"Evidence grade: {consensus.grade}. {consensus.confidence_reason}."]
        if consensus.key_supporting:
            lines.append("Key supporting studies: " + ", ".join(f"[{i}]" for i in consensus.key_supporting) + ".")
        if consensus.key_contradicting:
            lines.append(
                "Key contradicting studies: " + ", ".join(f"[{i}]" for i in consensus.key_contradicting) + "."
            )
        return SynthesisSection(
            title=CONSENSUS,
            content="\n".join(lines),
            source_ids=consensus.key_supporting + consensus.key_contradicting,
        )

    @staticmethod
    def _conflicts_section(context: SynthesisContext) -> SynthesisSection | None:
        disputes = context.citation_graph.edges_of_type(CitationType.DISPUTING)
        if not disputes:
            return None
        lines = ["Some findings disagree:"]
        ids: dict[str, None] = {}
        for edge in sorted(disputes, key=lambda e: -e.confidence):
            detail = f": {edge.statement.rstrip('. ')}" if edge.statement else ""
            lines.append(f"- [{edge.from_id}] disputes [{edge.to_id}]{detail}.")
            ids.setdefault(edge.from_id, None)
            ids.setdefault(edge.to_id, None)
        return SynthesisSection(title=CONFLICTING_EVIDENCE, content="\n".join(lines), source_ids=list(ids))

    @staticmethod
    def _gaps_section(context: SynthesisContext) -> SynthesisSection:
        gaps = []
        thin = [
            p.name
            for p in context.perspectives
            if len(context.sources_for_perspective(p.id)) < MIN_SOURCES_PER_PERSPECTIVE
        ]
        if thin:
            gaps.append(f"Little evidence was found for: {', '.join(thin)}.")
        failed = [n.topic for n in context.tree.nodes.values() if n.status is NodeStatus.FAILED]
        if failed:
            gaps.append(f"{len(failed)} sub-questions could not be searched successfully.")
        recent = [s for s in context.sources if s.year and s.year >= context.year - RECENT_YEARS]
        if context.sources and len(recent) < len(context.sources) / 5:
            gaps.append("Few studies from the last five years were found.")
        if context.consensus is not None and not (
            context.consensus.metrics.has_rcts or context.consensus.metrics.has_meta_analyses
        ):
            gaps.append("No randomized trials or meta-analyses were identified.")
        if not gaps:
            gaps.append("No major gaps were identified in the collected evidence.")
        return SynthesisSection(title=RESEARCH_GAPS, content="\n".join(f"- {g}" for g in gaps))


def references(synthesis: Synthesis, context: SynthesisContext) -> list[dict[str, Any]]:
    """CSL-shaped reference records for every cited source, in citation order."""
    refs = []
    for source_id in synthesis.cited_source_ids:
        source = context.source(source_id)
        if source is not None:
            ref = source.to_reference()
            ref["id"] = source_id
            refs.append(ref)
    return refs
