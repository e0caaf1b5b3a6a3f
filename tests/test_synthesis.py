"""
Tests for SynthesisBuilder - sections, source choice and revisions.
"""

from __future__ import annotations

import pytest

from deep_research.application.research import (
    DraftOptions,
    SynthesisBuilder,
    SynthesisContext,
    calculate_consensus,
    references,
)
from deep_research.domain.entities import (
    FeedbackSeverity,
    FeedbackType,
    NodeStatus,
    Perspective,
    ReviewFeedback,
    create_research_session,
)

from .conftest import SYNTHESIS_TOPIC, make_synthesis_context


@pytest.fixture
def builder():
    return SynthesisBuilder()


@pytest.fixture
def context():
    return make_synthesis_context()


# ============================================================
# Sections
# ============================================================


class TestSections:
    def test_section_order(self, builder, context):
        draft = builder.build(context)

        assert [s.title for s in draft.sections] == [
            "Overview",
            "Clinical Outcomes",
            "Biological Mechanisms",
            "Research Gaps",
        ]
        assert draft.content.startswith("## Overview\n\n")

    def test_consensus_section_before_gaps(self, builder, context):
        context.consensus = calculate_consensus(SYNTHESIS_TOPIC, context.sources, current_year=2025)

        titles = [s.title for s in builder.build(context).sections]

        assert titles[-2:] == ["Consensus", "Research Gaps"]

    def test_overview_summarises_collection(self, builder, context):
        overview = builder.build(context).section("Overview")

        assert overview.content.startswith(
            f"This synthesis covers 4 sources published 2015-2024 on {SYNTHESIS_TOPIC!r}, drawn from pubmed"
        )
        assert overview.source_ids == ["src-1", "src-4", "src-2"]
        assert "- Statins lowered dementia risk [src-1]." in overview.content
        assert "- Study src-4 [src-4]." in overview.content

    def test_perspective_section_cites_its_own_sources(self, builder, context):
        draft = builder.build(context)

        assert draft.section("Clinical Outcomes").source_ids == ["src-1", "src-2", "src-3"]
        assert draft.section("Biological Mechanisms").cited_ids == ["src-4"]
        assert set(draft.cited_source_ids) == {"src-1", "src-2", "src-3", "src-4"}

    def test_perspective_without_sources(self, builder):
        context = make_synthesis_context()
        context.perspectives.append(Perspective(id="epidemiology", name="Epidemiology", description="Population data"))

        section = builder.build(context).section("Epidemiology")

        assert section.source_ids == []
        assert section.content == "No sources were found addressing population data."

    def test_empty_context(self, builder):
        draft = builder.build(SynthesisContext(topic="rare topic", perspectives=[], sources=[]))

        assert draft.section("Overview").content == "No sources were collected for 'rare topic'."
        assert draft.section("Research Gaps").content == "- No major gaps were identified in the collected evidence."
        assert draft.citation_count == 0


class TestResearchGaps:
    def test_thin_perspective_reported(self, builder, context):
        gaps = builder.build(context).section("Research Gaps").content

        assert "Little evidence was found for: Biological Mechanisms." in gaps
        assert "last five years" not in gaps

    def test_failed_nodes_reported(self, builder, context):
        context.tree.get("node-2").status = NodeStatus.FAILED

        gaps = builder.build(context).section("Research Gaps").content

        assert "1 sub-questions could not be searched successfully." in gaps

    def test_old_collection_reported(self, builder, context):
        for source in context.sources:
            source.year = 2010

        gaps = builder.build(context).section("Research Gaps").content

        assert "Few studies from the last five years were found." in gaps


# ============================================================
# Draft Options
# ============================================================


class TestOptions:
    def test_prefer_recent(self, builder, context):
        draft = builder.build(context, DraftOptions(sources_per_section=1, prefer_recent=True))

        assert draft.section("Clinical Outcomes").source_ids == ["src-1"]
        assert draft.section("Overview").source_ids == ["src-4"]

    def test_prefer_strong_designs(self, builder, context):
        draft = builder.build(context, DraftOptions(sources_per_section=1, prefer_strong_designs=True))

        assert draft.section("Clinical Outcomes").source_ids == ["src-3"]

    def test_conflicts_section(self, builder):
        context = make_synthesis_context(dispute=True)

        section = builder.build(context, DraftOptions(include_conflicts=True)).section("Conflicting Evidence")

        assert section.content == "Some findings disagree:\n- [src-2] disputes [src-1]: Statins did not help."
        assert section.source_ids == ["src-2", "src-1"]

    def test_conflicts_section_needs_disputes(self, builder, context):
        draft = builder.build(context, DraftOptions(include_conflicts=True))

        assert draft.section("Conflicting Evidence") is None

    def test_conflicts_off_by_default(self, builder):
        draft = builder.build(make_synthesis_context(dispute=True))

        assert draft.section("Conflicting Evidence") is None


class TestAdjust:
    @pytest.mark.parametrize(
        ("feedback_type", "expected"),
        [
            (FeedbackType.CONTRADICTION, DraftOptions(include_conflicts=True)),
            (FeedbackType.OUTDATED_SOURCES, DraftOptions(prefer_recent=True)),
            (FeedbackType.INSUFFICIENT_EVIDENCE, DraftOptions(prefer_strong_designs=True)),
            (FeedbackType.MISSING_COVERAGE, DraftOptions(sources_per_section=5)),
            (FeedbackType.UNSUPPORTED_CLAIM, DraftOptions(sources_per_section=5)),
            (FeedbackType.BIAS, DraftOptions(sources_per_section=5)),
        ],
    )
    def test_feedback_turns_one_knob(self, feedback_type, expected):
        feedback = [ReviewFeedback(feedback_type, FeedbackSeverity.MAJOR, "x")]

        assert SynthesisBuilder.adjust(DraftOptions(), feedback) == expected

    def test_adjustments_accumulate(self):
        feedback = [
            ReviewFeedback(FeedbackType.BIAS, FeedbackSeverity.MINOR, "a"),
            ReviewFeedback(FeedbackType.MISSING_COVERAGE, FeedbackSeverity.MAJOR, "b"),
        ]

        assert SynthesisBuilder.adjust(DraftOptions(), feedback).sources_per_section == 7

    def test_no_feedback_keeps_options(self):
        options = DraftOptions(prefer_recent=True)

        assert SynthesisBuilder.adjust(options, []) is options


# ============================================================
# References and Context
# ============================================================


class TestReferences:
    def test_in_citation_order(self, builder, context):
        draft = builder.build(context)

        refs = references(draft, context)

        assert [r["id"] for r in refs] == draft.cited_source_ids
        assert refs[0]["title"] == "Study src-1"
        assert refs[0]["issued"] == {"date-parts": [[2023]]}

    def test_unknown_markers_skipped(self, builder, context):
        draft = builder.build(context)
        draft.sections[0].content += " Invented [src-99]."

        assert "src-99" not in [r["id"] for r in references(draft, context)]


class TestContext:
    def test_from_session(self):
        session = create_research_session(SYNTHESIS_TOPIC, "quick")

        context = SynthesisContext.from_session(session)

        assert context.topic == SYNTHESIS_TOPIC
        assert context.tree is session.tree
        assert context.current_year is None
        assert context.year >= 2024

    def test_sources_for_perspective(self, context):
        ids = [s.session_id for s in context.sources_for_perspective("clinical-outcomes")]

        assert ids == ["src-1", "src-2", "src-3"]
        assert context.sources_for_perspective("unknown") == []
