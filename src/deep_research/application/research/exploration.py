"""
ExplorationEngine - breadth-first expansion of the research tree.

Tree shape:
    root (depth 0, organising only)
     ├── one node per perspective (depth 1)
     │    └── up to ``breadth`` children from that node's new directions
     └── ...                                   never deeper than ``depth``

Each level runs concurrently (at most ``breadth`` nodes at a time); the
iterations of one node run in order because iteration k refines the query
with what iteration k-1 learned.

Budgets:
    max_sources  - the pool refuses new entities, pending nodes are closed
    time budget  - in-flight searches are abandoned at the deadline
Both stop the run early with partial results; neither is an error.
A session cancelled while exploring stops at its next search the same way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from deep_research.application.search import UnifiedSearchService
from deep_research.core.async_utils import gather_bounded
from deep_research.core.exceptions import TreeInvariantError, error_message
from deep_research.domain.entities import (
    ArticleType,
    ExplorationNode,
    IterationResult,
    NodeStatus,
    Perspective,
    ResearchSession,
    ResearchSource,
    SearchResult,
    StudyDesign,
    UnifiedSearchOptions,
)

from .events import EventBus, EventType
from .extraction import classify_study_design, extract_learnings, extract_new_directions, is_peer_reviewed
from .source_pool import SourcePool

logger = logging.getLogger(__name__)

SourceCallback = Callable[[ResearchSource], object]

STOP_MAX_SOURCES = "max_sources"
STOP_TIME_BUDGET = "time_budget"
STOP_CANCELLED = "cancelled"

MAX_LEARNINGS_PER_ITERATION = 3

ARTICLE_TYPE_DESIGNS: dict[ArticleType, tuple[StudyDesign, ...]] = {
    ArticleType.RCT: (StudyDesign.RCT,),
    ArticleType.META_ANALYSIS: (StudyDesign.META_ANALYSIS,),
    ArticleType.SYSTEMATIC_REVIEW: (StudyDesign.SYSTEMATIC_REVIEW,),
    ArticleType.COHORT: (StudyDesign.COHORT,),
    ArticleType.CASE_CONTROL: (StudyDesign.CASE_CONTROL,),
    ArticleType.CASE_REPORT: (StudyDesign.CASE_REPORT, StudyDesign.CASE_SERIES),
    ArticleType.REVIEW: (StudyDesign.NARRATIVE_REVIEW, StudyDesign.SYSTEMATIC_REVIEW),
}


def matches_article_types(result: SearchResult, article_types: tuple[ArticleType, ...]) -> bool:
    if not article_types or ArticleType.ALL in article_types:
        return True
    if ArticleType.PREPRINT in article_types and is_peer_reviewed(result) is False:
        return True
    design = classify_study_design(result)
    return any(design in ARTICLE_TYPE_DESIGNS.get(t, ()) for t in article_types)


class ExplorationEngine:
    """
    Populates ``session.tree`` and the session source pool.

    Usage:
        engine = ExplorationEngine(search_service, events)
        await engine.explore(session, pool, deadline=loop.time() + 300)
    """

    def __init__(self, search_service: UnifiedSearchService, events: EventBus | None = None):
        self._search = search_service
        self._events = events

    def _emit(self, event_type: EventType, session: ResearchSession, **data) -> None:
        if self._events is not None:
            self._events.emit(event_type, session.id, **data)

    # =========================================================================
    # Tree
    # =========================================================================

    def plant(self, session: ResearchSession) -> None:
        """Root plus one depth-1 node per perspective (no-op when already planted)."""
        tree = session.tree
        if tree.root is not None:
            return
        config = session.config
        root = tree.add_root(session.topic)
        for perspective in session.perspectives[: config.breadth]:
            tree.add_node(
                session.topic,
                parent_id=root.id,
                max_depth=config.depth,
                max_breadth=config.breadth,
                perspective_id=perspective.id,
            )

    async def explore(
        self,
        session: ResearchSession,
        pool: SourcePool,
        *,
        deadline: float | None = None,
        on_source: SourceCallback | None = None,
    ) -> None:
        """
        Run every pending node until the tree is done or a budget stops it.

        *on_source* is called once for each newly adopted source.
        """
        self.plant(session)
        tree = session.tree
        root = tree.get(tree.root_id)
        perspectives = {p.id: p for p in session.perspectives}

        level = [n for n in tree.children_of(root.id) if n.status is NodeStatus.PENDING]
        while level:
            outcomes = await gather_bounded(
                [
                    self._run_node(
                        session, node, pool, perspectives.get(node.perspective_id or ""), deadline, on_source
                    )
                    for node in level
                ],
                limit=session.config.breadth,
            )
            next_level: list[ExplorationNode] = []
            for node, outcome in zip(level, outcomes, strict=True):
                if isinstance(outcome, Exception):
                    logger.error(f"Node {node.id} crashed: {outcome!r}")
                    node.status = NodeStatus.FAILED
                    session.record_error("researching", error_message(outcome), node_id=node.id)
                    continue
                next_level.extend(outcome)
            level = next_level

        # Budget stops leave nodes that never ran
        for node in tree.pending_nodes():
            if node.id != root.id:
                node.status = NodeStatus.COMPLETE
        root.status = NodeStatus.COMPLETE
        session.refresh_progress()

        problems = tree.violations(session.config.depth, session.config.breadth)
        if problems:
            raise TreeInvariantError("; ".join(problems))

    # =========================================================================
    # Node
    # =========================================================================

    def _budget_stop(self, session: ResearchSession, pool: SourcePool, deadline: float | None) -> str | None:
        if session.status.is_terminal:
            return STOP_CANCELLED
        if session.early_stop_reason:
            return session.early_stop_reason
        if pool.exhausted:
            return STOP_MAX_SOURCES
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            return STOP_TIME_BUDGET
        return None

    def _stop(self, session: ResearchSession, reason: str) -> None:
        if session.early_stop_reason is None:
            logger.info(f"Session {session.id}: stopping exploration early ({reason})")
            session.early_stop_reason = reason

    async def _run_node(
        self,
        session: ResearchSession,
        node: ExplorationNode,
        pool: SourcePool,
        perspective: Perspective | None,
        deadline: float | None,
        on_source: SourceCallback | None = None,
    ) -> list[ExplorationNode]:
        reason = self._budget_stop(session, pool, deadline)
        if reason:
            self._stop(session, reason)
            node.status = NodeStatus.COMPLETE
            return []

        config = session.config
        node.status = NodeStatus.SEARCHING
        self._emit(EventType.NODE_STARTED, session, node_id=node.id, topic=node.topic, depth=node.depth)

        query = ""
        for k in range(1, max(1, config.iteration_limit) + 1):
            reason = self._budget_stop(session, pool, deadline)
            if reason:
                self._stop(session, reason)
                break
            query = self._build_query(node, perspective, k, query)
            try:
                iteration = await self._iterate(session, node, pool, query, k, deadline, on_source)
            except TimeoutError:
                self._stop(session, STOP_TIME_BUDGET)
                break
            node.iterations.append(iteration)
            session.refresh_progress()

        if node.iterations and all(it.failed for it in node.iterations):
            node.status = NodeStatus.FAILED
        else:
            node.status = NodeStatus.COMPLETE

        children = self._spawn_children(session, node)
        session.refresh_progress()
        self._emit(
            EventType.NODE_COMPLETE,
            session,
            node_id=node.id,
            status=node.status.value,
            sources=len(node.source_ids),
            children=[c.id for c in children],
            progress=session.progress.to_dict(),
        )
        return children

    @staticmethod
    def _build_query(node: ExplorationNode, perspective: Perspective | None, k: int, previous: str) -> str:
        """
        Query for iteration *k* (1-based).

        Perspective nodes walk their search strategies first; afterwards the
        previous query is refined with the strongest new direction.
        """
        if perspective is not None and node.depth == 1 and k <= len(perspective.search_strategies):
            return perspective.search_strategies[k - 1]
        if not previous:
            return node.topic
        for direction in node.new_directions:
            if direction != previous:
                return direction
        return previous

    async def _iterate(
        self,
        session: ResearchSession,
        node: ExplorationNode,
        pool: SourcePool,
        query: str,
        k: int,
        deadline: float | None,
        on_source: SourceCallback | None = None,
    ) -> IterationResult:
        config = session.config
        options = UnifiedSearchOptions(
            text=query,
            sources=list(config.sources),
            year_range=config.date_range,
            limit=config.per_iteration_limit,
        )
        async with asyncio.timeout_at(deadline):
            response = await self._search.search(options)
        if session.status.is_terminal:
            # Late results of a session stopped from outside are discarded
            return IterationResult(iteration=k, query=query, database=",".join(config.sources), sources_found=0)

        errors = []
        for error in response.errors:
            errors.append(f"{error.source}: {error.message}")
            session.record_error("researching", error.message, source=error.source, node_id=node.id)

        results = [r for r in response.results if matches_article_types(r, config.article_types)]
        learnings: list[str] = []
        for result in results:
            outcome = await pool.add(result, node_id=node.id, topic=node.topic)
            if outcome.source is None:
                continue
            node.link_source(outcome.source.session_id)
            if outcome.added:
                if on_source is not None:
                    on_source(outcome.source)
                self._emit(
                    EventType.SOURCE_FOUND,
                    session,
                    node_id=node.id,
                    source_id=outcome.source.session_id,
                    title=outcome.source.title,
                )
            if len(learnings) < MAX_LEARNINGS_PER_ITERATION:
                learnings.extend(extract_learnings(result.abstract, max_items=1))

        logger.debug(f"{node.id} iteration {k}: {query!r} -> {len(results)} results, {len(errors)} errors")
        return IterationResult(
            iteration=k,
            query=query,
            database=",".join(config.sources),
            sources_found=len(results),
            learnings=learnings,
            new_directions=extract_new_directions(results, node.topic),
            errors=errors,
        )

    def _spawn_children(self, session: ResearchSession, node: ExplorationNode) -> list[ExplorationNode]:
        config = session.config
        if node.depth >= config.depth or session.early_stop_reason or node.status is NodeStatus.FAILED:
            return []
        tree = session.tree
        seen = {node.topic.lower()} | {a.topic.lower() for a in tree.ancestors_of(node.id)}
        children = []
        for direction in node.new_directions:
            if len(children) >= config.breadth:
                break
            if direction.lower() in seen:
                continue
            seen.add(direction.lower())
            children.append(
                tree.add_node(
                    direction,
                    parent_id=node.id,
                    max_depth=config.depth,
                    max_breadth=config.breadth,
                )
            )
        return children
