"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest

from deep_research.application.research import PerspectiveGenerator, SynthesisContext
from deep_research.application.search import UnifiedSearchService
from deep_research.core.exceptions import APIError
from deep_research.domain.entities import (
    Author,
    CitationEdge,
    CitationGraph,
    CitationNode,
    CitationType,
    ExplorationTree,
    ResearchSource,
    SearchQuery,
    SearchResult,
    SourceQuality,
    StudyDesign,
)
from deep_research.infrastructure.sources import SourceAdapter, SourceRegistry

# ============================================================
# Record Factories
# ============================================================


def make_result(**overrides: Any) -> SearchResult:
    """SearchResult with sensible defaults; any field can be overridden."""
    values: dict[str, Any] = {
        "id": "1",
        "source": "pubmed",
        "title": "Statin therapy and the risk of dementia in older adults",
        "abstract": "",
        "year": 2022,
    }
    values.update(overrides)
    return SearchResult(**values)


def make_source(session_id: str = "src-1", design: StudyDesign = StudyDesign.OTHER, **overrides: Any) -> ResearchSource:
    values: dict[str, Any] = {
        "id": session_id,
        "source": "pubmed",
        "title": f"Study {session_id}",
        "year": 2022,
        "session_id": session_id,
        "discovered_by": "node-1",
        "quality": SourceQuality(study_design=design, peer_reviewed=True),
    }
    values.update(overrides)
    return ResearchSource(**values)


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def source_factory():
    return make_source


# ============================================================
# Fake Adapters
# ============================================================


class FakeAdapter(SourceAdapter):
    """
    In-memory adapter.

    Returns ``results`` (truncated to the query limit), raises ``error`` when
    set, and sleeps ``delay`` seconds once more than ``fast_calls`` calls
    have been made.
    """

    def __init__(
        self,
        source_id: str,
        results: list[SearchResult] | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        fast_calls: int = 0,
    ):
        self.id = source_id
        self.name = source_id
        self.results = results or []
        self.error = error
        self.delay = delay
        self.fast_calls = fast_calls
        self.queries: list[SearchQuery] = []
        self.by_id: dict[str, SearchResult] = {}
        self.closed = False

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        self.queries.append(query)
        if self.delay and len(self.queries) > self.fast_calls:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.results[: query.limit], len(self.results)

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        if self.error is not None:
            raise self.error
        return self.by_id.get(identifier)

    async def close(self) -> None:
        self.closed = True


class GeneratingAdapter(FakeAdapter):
    """Adapter that invents fresh, unique records for every call."""

    _counter = itertools.count(1)

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        self.queries.append(query)
        if self.delay and len(self.queries) > self.fast_calls:
            await asyncio.sleep(self.delay)
        results = []
        for _ in range(query.limit):
            n = next(self._counter)
            results.append(
                make_result(
                    id=f"gen-{n}",
                    source=self.id,
                    title=f"Generated cohort report number {n} on {query.text}",
                    abstract=f"We found that exposure {n} was associated with lower risk.",
                    doi=f"10.9999/gen.{n}",
                )
            )
        return results, 1000


@pytest.fixture
def fake_adapter_cls():
    return FakeAdapter


@pytest.fixture
def generating_adapter_cls():
    return GeneratingAdapter


@pytest.fixture
def provider_error():
    return APIError("pubmed: HTTP 503 Service Unavailable", source="pubmed")


# ============================================================
# Corpus
# ============================================================


@pytest.fixture
def statin_corpus() -> list[SearchResult]:
    """Eight records on statins and dementia with a spread of designs, years and stances."""
    return [
        make_result(
            id="101",
            title="Statin use and dementia risk: a meta-analysis of cohort studies",
            abstract=(
                "We pooled 24 cohort studies including 2,000,000 participants. "
                "Statin therapy was associated with significant improvement in dementia risk. "
                "Statins were effective across age groups."
            ),
            year=2021,
            doi="10.1000/meta.2021",
            pmid="101",
            journal="Neurology",
            citation_count=340,
            publication_types=["Meta-Analysis"],
            authors=[Author(name="Ana Lopez", first_name="Ana", last_name="Lopez")],
        ),
        make_result(
            id="102",
            title="Randomized controlled trial of simvastatin for dementia prevention in older adults",
            abstract=(
                "In this randomized trial of 1,200 patients, simvastatin did not improve cognitive outcomes. "
                "There was no significant difference in dementia incidence."
            ),
            year=2019,
            doi="10.1000/rct.2019",
            pmid="102",
            journal="Lancet",
            citation_count=210,
            publication_types=["Randomized Controlled Trial"],
        ),
        make_result(
            id="103",
            title="Statin therapy and cognitive decline: a prospective cohort study",
            abstract=(
                "We followed 5,400 participants for ten years. "
                "Statin therapy showed a beneficial association with slower cognitive decline and dementia."
            ),
            year=2023,
            doi="10.1000/cohort.2023",
            pmid="103",
            journal="JAMA Neurology",
            citation_count=45,
        ),
        make_result(
            id="104",
            title="Mechanisms of statin neuroprotection: cholesterol, inflammation and amyloid",
            abstract=(
                "Statins reduced amyloid deposition in animal models. "
                "Anti-inflammatory pathways were identified as a mechanism for dementia protection."
            ),
            year=2020,
            doi="10.1000/mech.2020",
            journal="Brain Research",
            citation_count=88,
            publication_types=["Review"],
        ),
        make_result(
            id="105",
            title="Systematic review of statin therapy safety and cognitive adverse effects",
            abstract=(
                "This systematic review identified reports of transient memory complaints. "
                "Statin therapy was not associated with increased dementia risk."
            ),
            year=2022,
            doi="10.1000/sr.2022",
            journal="Drug Safety",
            citation_count=60,
        ),
        make_result(
            id="106",
            title="Case report: reversible memory loss after atorvastatin initiation",
            abstract="We report a case of a 71-year-old woman with memory loss after starting atorvastatin.",
            year=2015,
            doi="10.1000/case.2015",
            journal="BMJ Case Reports",
            citation_count=3,
        ),
        make_result(
            id="107",
            source="arxiv",
            title="Machine learning estimates of statin effects on dementia from health records",
            abstract=(
                "Using data from 300,000 patients, causal models suggest statin therapy reduced dementia risk. "
                "Statins were effective in patients with hypercholesterolemia."
            ),
            year=2024,
            arxiv_id="2401.01234",
            publication_types=["preprint"],
        ),
        make_result(
            id="108",
            title="Epidemiology of dementia and statin prescribing patterns in Europe",
            abstract=(
                "A cross-sectional survey of 12,000 adults found statin prescribing increased. "
                "Dementia prevalence varied between countries."
            ),
            year=2018,
            doi="10.1000/epi.2018",
            journal="European Journal of Epidemiology",
            citation_count=20,
        ),
    ]


@pytest.fixture
def corpus_registry(statin_corpus) -> SourceRegistry:
    return SourceRegistry([FakeAdapter("pubmed", statin_corpus)])


@pytest.fixture
def corpus_search_service(corpus_registry) -> UnifiedSearchService:
    return UnifiedSearchService(corpus_registry, adapter_timeout=5.0)


# ============================================================
# Synthesis Context
# ============================================================

SYNTHESIS_TOPIC = "statin therapy dementia"


def make_synthesis_context(*, dispute: bool = False):
    """
    Two perspectives over four sources, evaluated as of 2025.

    Clinical Outcomes is linked to src-1..src-3, Biological Mechanisms to
    src-4 only. With ``dispute`` the citation graph holds one disputing
    edge src-2 -> src-1.
    """
    perspectives = PerspectiveGenerator().generate(SYNTHESIS_TOPIC, 2)
    sources = [
        make_source("src-1", StudyDesign.RCT, year=2023, relevance_score=0.9, key_findings=["Statins lowered dementia risk."]),
        make_source("src-2", StudyDesign.COHORT, year=2021, relevance_score=0.5),
        make_source("src-3", StudyDesign.META_ANALYSIS, year=2015, relevance_score=0.3),
        make_source("src-4", StudyDesign.OTHER, year=2024, relevance_score=0.8),
    ]
    tree = ExplorationTree()
    root = tree.add_root(SYNTHESIS_TOPIC)
    clinical = tree.add_node("clinical", parent_id=root.id, max_depth=2, max_breadth=3, perspective_id=perspectives[0].id)
    mechanisms = tree.add_node("mechanisms", parent_id=root.id, max_depth=2, max_breadth=3, perspective_id=perspectives[1].id)
    for source_id in ("src-1", "src-2", "src-3"):
        clinical.link_source(source_id)
    mechanisms.link_source("src-4")

    graph = CitationGraph()
    if dispute:
        graph.add_node(CitationNode("src-1", "Study src-1"))
        graph.add_node(CitationNode("src-2", "Study src-2"))
        graph.add_edge(CitationEdge("src-2", "src-1", CitationType.DISPUTING, 0.7, statement="Statins did not help."))

    return SynthesisContext(
        topic=SYNTHESIS_TOPIC,
        perspectives=perspectives,
        sources=sources,
        tree=tree,
        citation_graph=graph,
        current_year=2025,
    )
