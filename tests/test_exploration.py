"""
Tests for ExplorationEngine - tree expansion, dedup across nodes and budgets.
"""

from __future__ import annotations

import asyncio

import pytest

from deep_research.application.research import (
    EventBus,
    EventType,
    ExplorationEngine,
    PerspectiveGenerator,
    SourcePool,
)
from deep_research.application.research.exploration import (
    STOP_CANCELLED,
    STOP_MAX_SOURCES,
    STOP_TIME_BUDGET,
    matches_article_types,
)
from deep_research.application.search import UnifiedSearchService
from deep_research.core.exceptions import APIError
from deep_research.domain.entities import ArticleType, NodeStatus, SessionStatus, create_research_session
from deep_research.infrastructure.sources import SourceRegistry

from .conftest import FakeAdapter, GeneratingAdapter, make_result

TOPIC = "statin therapy dementia"


def _session(mode="quick", **overrides):
    session = create_research_session(TOPIC, mode, config_overrides={"sources": ["pubmed"], **overrides})
    session.perspectives = PerspectiveGenerator().generate(TOPIC, session.config.breadth)
    return session


async def _explore(service, session, deadline=None, events=None, on_source=None):
    pool = SourcePool(session.config.max_sources, session.sources)
    await ExplorationEngine(service, events).explore(session, pool, deadline=deadline, on_source=on_source)
    return pool


def _service(adapter, timeout: float = 30.0) -> UnifiedSearchService:
    return UnifiedSearchService(SourceRegistry([adapter]), adapter_timeout=timeout)


# ============================================================
# Tree Expansion
# ============================================================


class TestTreeExpansion:
    async def test_quick_mode_shape(self, corpus_search_service):
        session = _session()

        await _explore(corpus_search_service, session)

        tree = session.tree
        assert tree.total_nodes == 3
        assert [n.depth for n in tree.nodes.values()] == [0, 1, 1]
        assert all(n.status is NodeStatus.COMPLETE for n in tree.nodes.values())
        assert tree.violations(1, 2) == []
        assert session.early_stop_reason is None

    async def test_first_query_is_perspective_strategy(self, corpus_search_service):
        session = _session()

        await _explore(corpus_search_service, session)

        node = session.tree.get("node-1")
        assert len(node.iterations) == 1
        assert node.iterations[0].query == session.perspectives[0].search_strategies[0]
        assert node.perspective_id == "clinical-outcomes"

    async def test_sources_are_shared_across_nodes(self, corpus_search_service):
        session = _session()

        await _explore(corpus_search_service, session)

        # per-iteration limit is 10 // 2 == 5, both nodes see the same five records
        assert len(session.sources) == 5
        assert len({s.session_id for s in session.sources}) == 5
        for node_id in ("node-1", "node-2"):
            assert len(session.tree.get(node_id).source_ids) == 5
        assert all(set(s.linked_nodes) == {"node-1", "node-2"} for s in session.sources)

    async def test_children_spawn_from_new_directions(self, corpus_search_service):
        session = _session("standard")

        await _explore(corpus_search_service, session)

        tree = session.tree
        children = [n for n in tree.nodes.values() if n.depth == 2]
        assert children
        assert all(n.topic.startswith(TOPIC) for n in children)
        assert all(n.status.is_terminal for n in tree.nodes.values())
        assert tree.violations(2, 3) == []

    async def test_on_source_and_events(self, corpus_search_service):
        session = _session()
        events = EventBus()
        seen = []

        await _explore(corpus_search_service, session, events=events, on_source=seen.append)

        assert seen == session.sources
        types = [e.type for e in events.history(session.id)]
        assert types.count(EventType.NODE_STARTED) == 2
        assert types.count(EventType.NODE_COMPLETE) == 2
        assert types.count(EventType.SOURCE_FOUND) == 5

    async def test_article_type_filter(self, corpus_search_service):
        session = _session(article_types=["rct"])

        await _explore(corpus_search_service, session)

        assert [s.id for s in session.sources] == ["102"]

    async def test_replanting_is_a_noop(self, corpus_search_service):
        session = _session()
        engine = ExplorationEngine(corpus_search_service)

        engine.plant(session)
        engine.plant(session)

        assert session.tree.total_nodes == 3


# ============================================================
# Failures
# ============================================================


class TestFailures:
    async def test_all_iterations_failing_marks_node_failed(self, provider_error):
        session = _session()

        await _explore(_service(FakeAdapter("pubmed", error=provider_error)), session)

        assert session.sources == []
        assert session.tree.get("node-1").status is NodeStatus.FAILED
        assert {e.source for e in session.errors} == {"pubmed"}
        assert session.tree.get("node-1").iterations[0].errors == [f"pubmed: {provider_error}"]

    async def test_cancelled_session_discards_late_results(self, statin_corpus):
        session = _session(iteration_limit=3)
        adapter = FakeAdapter("pubmed", statin_corpus, delay=0.05)
        exploring = asyncio.create_task(_explore(_service(adapter), session))
        await asyncio.sleep(0.01)

        session.transition_to(SessionStatus.CANCELLED)
        await exploring

        assert session.sources == []
        assert session.early_stop_reason == STOP_CANCELLED
        assert len(adapter.queries) == 2

    async def test_one_failing_database_with_empty_other_is_not_failed(self, provider_error):
        session = _session(sources=["pubmed", "arxiv"])
        service = UnifiedSearchService(
            SourceRegistry([FakeAdapter("pubmed"), FakeAdapter("arxiv", error=provider_error)]),
            adapter_timeout=30.0,
        )

        await _explore(service, session)

        node = session.tree.get("node-1")
        assert node.status is NodeStatus.COMPLETE
        assert node.iterations[0].databases == ["pubmed", "arxiv"]
        assert len(node.iterations[0].errors) == 1


# ============================================================
# Budgets
# ============================================================


class TestBudgets:
    async def test_max_sources_stops_early(self):
        session = _session(max_sources=3, iteration_limit=3)

        await _explore(_service(GeneratingAdapter("pubmed")), session)

        assert len(session.sources) == 3
        assert session.early_stop_reason == STOP_MAX_SOURCES
        assert session.partial
        assert all(n.status.is_terminal for n in session.tree.nodes.values())

    async def test_time_budget_stops_early(self):
        session = _session(iteration_limit=2)
        # only the very first search answers; it brings 5 of the 10 allowed sources
        adapter = GeneratingAdapter("pubmed", delay=10.0, fast_calls=1)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await _explore(_service(adapter), session, deadline=loop.time() + 0.3)

        assert loop.time() - started < 5.0
        assert session.early_stop_reason == STOP_TIME_BUDGET
        assert len(session.sources) == 5
        assert all(n.status.is_terminal for n in session.tree.nodes.values())

    async def test_expired_deadline_runs_nothing(self, statin_corpus):
        adapter = FakeAdapter("pubmed", statin_corpus)
        session = _session()
        loop = asyncio.get_running_loop()

        await _explore(_service(adapter), session, deadline=loop.time() - 1)

        assert adapter.queries == []
        assert session.early_stop_reason == STOP_TIME_BUDGET


# ============================================================
# Article Types
# ============================================================


@pytest.mark.parametrize(
    ("types", "pub_types", "expected"),
    [
        ((ArticleType.ALL,), [], True),
        ((ArticleType.RCT,), ["Randomized Controlled Trial"], True),
        ((ArticleType.RCT,), ["Review"], False),
        ((ArticleType.REVIEW,), ["Systematic Review"], True),
        ((ArticleType.PREPRINT,), ["preprint"], True),
    ],
)
def test_matches_article_types(types, pub_types, expected):
    result = make_result(title="Untitled", publication_types=pub_types)

    assert matches_article_types(result, types) is expected
