"""Tests for the text extraction heuristics."""

from __future__ import annotations

import pytest

from deep_research.application.research.extraction import (
    classify_study_design,
    discloses_conflict,
    extract_learnings,
    extract_new_directions,
    extract_sample_size,
    is_peer_reviewed,
    relevance_score,
    split_sentences,
    tokenize,
)
from deep_research.domain.entities import StudyDesign

from .conftest import make_result


class TestTokenize:
    def test_drops_stopwords_and_short_tokens(self):
        assert tokenize("The effect of statins on AD in older adults") == ["statins", "older", "adults"]

    def test_split_sentences(self):
        assert split_sentences("First one. Second one! 3 more? end") == ["First one.", "Second one!", "3 more? end"]


class TestLearnings:
    def test_cue_sentences_in_order(self):
        text = (
            "Background: we enrolled adults. We found lower risk. Statins reduced events. "
            "Outcomes were associated with dose. Finally, risk increased."
        )

        assert extract_learnings(text) == [
            "We found lower risk.",
            "Statins reduced events.",
            "Outcomes were associated with dose.",
        ]

    def test_long_sentence_is_truncated(self):
        text = "We found that " + "very " * 60 + "low risk."

        learning = extract_learnings(text)[0]

        assert len(learning) <= 200
        assert learning.endswith("...")

    def test_no_cues(self):
        assert extract_learnings("Participants completed a questionnaire.") == []


class TestNewDirections:
    def test_shared_bigram_becomes_direction(self):
        results = [
            make_result(id="1", title="Cognitive decline in statin users"),
            make_result(id="2", title="Slower cognitive decline with treatment"),
        ]

        assert extract_new_directions(results, "statins dementia") == ["statins dementia cognitive decline"]

    def test_topic_words_are_skipped(self):
        results = [
            make_result(id="1", title="Cognitive decline in statin users"),
            make_result(id="2", title="Slower cognitive decline with treatment"),
        ]

        assert extract_new_directions(results, "cognitive decline") == []

    def test_single_record_yields_nothing(self):
        assert extract_new_directions([make_result(title="Cognitive decline cognitive decline")], "x") == []


class TestStudyDesign:
    @pytest.mark.parametrize(
        ("pub_types", "expected"),
        [
            (["Journal Article", "Randomized Controlled Trial"], StudyDesign.RCT),
            (["Systematic Review"], StudyDesign.SYSTEMATIC_REVIEW),
            (["Meta-Analysis", "Systematic Review"], StudyDesign.META_ANALYSIS),
            (["Review"], StudyDesign.NARRATIVE_REVIEW),
            (["Case Reports"], StudyDesign.CASE_REPORT),
        ],
    )
    def test_publication_types(self, pub_types, expected):
        assert classify_study_design(make_result(title="Untitled", publication_types=pub_types)) is expected

    @pytest.mark.parametrize(
        ("title", "abstract", "expected"),
        [
            ("Statins: a meta-analysis", "", StudyDesign.META_ANALYSIS),
            ("Statins in a prospective cohort", "", StudyDesign.COHORT),
            ("Memory loss", "We report a case of memory loss.", StudyDesign.CASE_REPORT),
            ("A cross-sectional survey", "", StudyDesign.CROSS_SECTIONAL),
            ("Lipids", "Nothing to see.", StudyDesign.OTHER),
        ],
    )
    def test_text_patterns(self, title, abstract, expected):
        assert classify_study_design(make_result(title=title, abstract=abstract)) is expected


class TestQualitySignals:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Overall n = 1,250 were analysed.", 1250),
            ("We enrolled 120 patients and 2,400 participants.", 2400),
            ("No counts here.", None),
        ],
    )
    def test_sample_size(self, text, expected):
        assert extract_sample_size(text) == expected

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("The authors declare no conflict of interest.", False),
            ("Competing interests: none declared.", False),
            ("This trial was funded by Acme Pharmaceuticals.", True),
            ("Several authors report competing interests with device makers.", True),
        ],
    )
    def test_conflict_disclosure(self, text, expected):
        assert discloses_conflict(text) is expected

    def test_peer_review(self):
        assert is_peer_reviewed(make_result(source="arxiv", arxiv_id="2401.00001")) is False
        assert is_peer_reviewed(make_result(publication_types=["preprint"])) is False
        assert is_peer_reviewed(make_result(journal="Neurology")) is True
        assert is_peer_reviewed(make_result()) is None


class TestRelevance:
    def test_weights(self):
        title_only = make_result(title="Statin therapy and dementia")
        everywhere = make_result(
            title="Statin therapy and dementia", abstract="Statin use and dementia.", keywords=["dementia"]
        )

        assert relevance_score(title_only, "statin dementia") == pytest.approx(0.5)
        assert relevance_score(everywhere, "statin dementia") == pytest.approx(0.9)

    def test_no_informative_topic_terms(self):
        assert relevance_score(make_result(), "the and of") == 0.0
