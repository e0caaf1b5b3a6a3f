"""
ResearchEngine - Session Orchestrator

Drives one ResearchSession through its stages:

    clarifying? → planning → researching → analyzing → reviewing → synthesizing → complete
                        ↘ failed (any stage)      ↘ cancelled (cancel_session)

    planning      perspectives generated, tree planted
    researching   ExplorationEngine fills the tree and the source pool;
                  the citation graph grows as sources arrive
    analyzing     consensus over the collected sources
    reviewing     ReviewLoop builds and revises the synthesis
    synthesizing  graph finalized, synthesis attached

Every transition recomputes progress, publishes a ``status`` event and,
when a store is configured, persists the session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from deep_research.application.search import UnifiedSearchService
from deep_research.core.exceptions import (
    ClarificationRequiredError,
    DeepResearchError,
    InvalidStateTransitionError,
    SessionNotFoundError,
)
from deep_research.domain.entities import (
    ResearchMode,
    ResearchSession,
    SessionStatus,
    create_research_session,
)
from deep_research.infrastructure.persistence import SessionStore

from .citation_graph import CitationGraphBuilder, graph_summary
from .consensus import DEFAULT_THRESHOLDS, ConfidenceThresholds, calculate_consensus
from .events import EngineEvent, EventBus, EventType
from .exploration import ExplorationEngine
from .perspectives import PerspectiveGenerator, PerspectiveProvider, clarifying_questions
from .quality_review import QualityReviewer, ReviewLoop, SynthesisReviewer
from .source_pool import SourcePool
from .synthesis import SynthesisBuilder, SynthesisContext

logger = logging.getLogger(__name__)


class ResearchEngine:
    """
    Orchestrates deep research sessions.

    Usage:
        engine = ResearchEngine(search_service)
        session = await engine.create_session("statins and dementia", mode="quick")
        session = await engine.execute_session(session.id)
        print(session.synthesis.content)

    Background execution:
        engine.start(session.id)
        async for event in engine.subscribe(session.id):
            ...
        await engine.cancel_session(session.id)
    """

    def __init__(
        self,
        search_service: UnifiedSearchService,
        *,
        events: EventBus | None = None,
        store: SessionStore | None = None,
        perspective_generator: PerspectiveProvider | None = None,
        reviewer: SynthesisReviewer | None = None,
        builder: SynthesisBuilder | None = None,
        thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS,
    ):
        self._search = search_service
        self._events = events or EventBus()
        self._store = store
        self._perspectives = perspective_generator or PerspectiveGenerator()
        self._reviewer = reviewer or QualityReviewer()
        self._builder = builder or SynthesisBuilder()
        self._thresholds = thresholds
        self._explorer = ExplorationEngine(search_service, self._events)
        self._sessions: dict[str, ResearchSession] = {}
        self._graph_builders: dict[str, CitationGraphBuilder] = {}
        self._tasks: dict[str, asyncio.Task[ResearchSession]] = {}

    @property
    def events(self) -> EventBus:
        return self._events

    # =========================================================================
    # Session API
    # =========================================================================

    async def create_session(
        self,
        topic: str,
        mode: ResearchMode | str = ResearchMode.STANDARD,
        user_id: str = "",
        config_overrides: dict[str, Any] | None = None,
        *,
        clarify: bool = False,
    ) -> ResearchSession:
        """
        Create a session from the mode preset plus overrides.

        With ``clarify=True`` the session waits in ``clarifying`` until
        ``submit_clarifications`` is called.
        """
        session = create_research_session(topic, mode, user_id, config_overrides, clarify=clarify)
        if clarify:
            session.clarifying_questions = clarifying_questions(session.topic)
        self._sessions[session.id] = session
        logger.info(f"Created session {session.id} ({session.mode.value}) for {session.topic!r}")
        self._emit(EventType.STATUS, session, status=session.status.value, progress=session.progress.to_dict())
        await self._save(session)
        return session

    async def get_session(self, session_id: str) -> ResearchSession:
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        if self._store is None:
            raise SessionNotFoundError(session_id)
        session = await asyncio.to_thread(self._store.load, session_id)
        self._sessions[session_id] = session
        return session

    async def submit_clarifications(self, session_id: str, answers: dict[str, str]) -> ResearchSession:
        """Fold the answers into the topic and move the session on to planning."""
        session = await self.get_session(session_id)
        if session.status is not SessionStatus.CLARIFYING:
            raise InvalidStateTransitionError(session.status.value, SessionStatus.PLANNING.value)
        session.clarifications.update({q: a.strip() for q, a in answers.items() if a and a.strip()})
        details = "; ".join(session.clarifications.values())
        if details:
            session.topic = f"{session.topic} ({details})"
        await self._advance(session, SessionStatus.PLANNING)
        return session

    async def execute_session(self, session_id: str) -> ResearchSession:
        """
        Run a session to a terminal status and return it.

        Budget exhaustion completes the session with ``partial`` results;
        cancellation leaves it ``cancelled`` and re-raises ``CancelledError``.

        Raises:
            ClarificationRequiredError: the session is still clarifying
            InvalidStateTransitionError: the session already finished
        """
        session = await self.get_session(session_id)
        if session.status is SessionStatus.CLARIFYING:
            raise ClarificationRequiredError(session.id, session.clarifying_questions)
        if session.status.is_terminal:
            raise InvalidStateTransitionError(session.status.value, SessionStatus.RESEARCHING.value)

        # cancel_session cancels whichever task is running the session
        current = asyncio.current_task()
        owns_task = current is not None and session_id not in self._tasks
        if owns_task:
            self._tasks[session_id] = current

        stage = SessionStatus.PLANNING.value
        try:
            await self._plan(session)
            stage = SessionStatus.RESEARCHING.value
            if not await self._research(session):
                return session
            stage = SessionStatus.ANALYZING.value
            await self._analyze(session)
            stage = SessionStatus.REVIEWING.value
            await self._review(session)
            stage = SessionStatus.COMPLETE.value
            await self._advance(session, SessionStatus.COMPLETE)
            self._emit(
                EventType.COMPLETE,
                session,
                sources=len(session.sources),
                partial=session.partial,
                early_stop_reason=session.early_stop_reason,
            )
            logger.info(
                f"Session {session.id} complete: {len(session.sources)} sources, "
                f"{session.tree.total_nodes} nodes, {len(session.errors)} errors"
            )
            return session
        except asyncio.CancelledError:
            await self._mark_cancelled(session)
            raise
        except DeepResearchError as e:
            logger.warning(f"Session {session.id} failed during {stage}: {e}")
            await self._fail(session, stage, str(e))
            return session
        except Exception as e:
            logger.exception(f"Session {session.id} crashed during {stage}")
            await self._fail(session, stage, f"{type(e).__name__}: {e}")
            raise
        finally:
            if owns_task and self._tasks.get(session_id) is current:
                del self._tasks[session_id]

    async def run(
        self,
        topic: str,
        mode: ResearchMode | str = ResearchMode.STANDARD,
        user_id: str = "",
        config_overrides: dict[str, Any] | None = None,
    ) -> ResearchSession:
        """Create and execute a session in one call."""
        session = await self.create_session(topic, mode, user_id, config_overrides)
        return await self.execute_session(session.id)

    def start(self, session_id: str) -> asyncio.Task[ResearchSession]:
        """Execute a session in a background task (one task per session)."""
        task = self._tasks.get(session_id)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self.execute_session(session_id), name=f"research-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(session_id, None))
        return task

    async def cancel_session(self, session_id: str) -> ResearchSession:
        """
        Stop a session cooperatively.

        Outstanding searches are abandoned; sources and synthesis gathered so
        far stay on the session.
        """
        session = await self.get_session(session_id)
        task = self._tasks.get(session_id)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        # A task cancelled before it started never reached its handler
        if not session.status.is_terminal:
            await self._mark_cancelled(session)
        return session

    def subscribe(self, session_id: str) -> AsyncIterator[EngineEvent]:
        """Events of one session, ending with its complete/error/cancelled event."""
        return self._events.stream(session_id)

    def list_sessions(self) -> list[ResearchSession]:
        return list(self._sessions.values())

    # =========================================================================
    # Stages
    # =========================================================================

    async def _plan(self, session: ResearchSession) -> None:
        if not session.perspectives:
            session.perspectives = self._perspectives.generate(session.topic, session.config.breadth)
            for perspective in session.perspectives:
                self._emit(EventType.PERSPECTIVE_ADDED, session, perspective=perspective.to_dict())
        self._explorer.plant(session)
        session.refresh_progress()
        await self._save(session)

    async def _research(self, session: ResearchSession) -> bool:
        """Explore the tree; False when the session failed or was cancelled meanwhile."""
        await self._advance(session, SessionStatus.RESEARCHING)
        config = session.config
        deadline = asyncio.get_running_loop().time() + config.effective_timeout
        pool = SourcePool(config.max_sources, sources=session.sources)
        graph_builder = CitationGraphBuilder(session.citation_graph)
        graph_builder.add_sources(session.sources)
        self._graph_builders[session.id] = graph_builder

        await self._explorer.explore(session, pool, deadline=deadline, on_source=graph_builder.add_source)
        if session.status.is_terminal:
            return False

        if not session.sources:
            reason = "No sources found"
            if session.errors:
                failing = sorted({e.source for e in session.errors if e.source})
                reason = f"No sources found; failing sources: {', '.join(failing)}" if failing else reason
            await self._fail(session, SessionStatus.RESEARCHING.value, reason)
            return False
        return True

    async def _analyze(self, session: ResearchSession) -> None:
        await self._advance(session, SessionStatus.ANALYZING)
        session.consensus = calculate_consensus(session.topic, session.sources, self._thresholds)

    async def _review(self, session: ResearchSession) -> None:
        await self._advance(session, SessionStatus.REVIEWING)
        config = session.config
        loop = ReviewLoop(self._builder, self._reviewer, config.quality_threshold, config.iteration_limit)
        synthesis = await loop.run(SynthesisContext.from_session(session))

        await self._advance(session, SessionStatus.SYNTHESIZING)
        graph_builder = self._graph_builders.pop(session.id, None) or CitationGraphBuilder(session.citation_graph)
        graph = graph_builder.finalize()
        session.synthesis = synthesis
        self._emit(
            EventType.SYNTHESIS_READY,
            session,
            sections=[s.title for s in synthesis.sections],
            revision_count=synthesis.revision_count,
            quality=synthesis.quality_score.to_dict() if synthesis.quality_score else None,
            citation_graph=graph_summary(graph),
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def _emit(self, event_type: EventType, session: ResearchSession, **data: Any) -> None:
        self._events.emit(event_type, session.id, **data)

    async def _advance(self, session: ResearchSession, status: SessionStatus) -> None:
        if session.status is status:
            return
        session.transition_to(status)
        logger.debug(f"Session {session.id} -> {status.value} ({session.progress.percentage}%)")
        self._emit(EventType.STATUS, session, status=status.value, progress=session.progress.to_dict())
        await self._save(session)

    async def _fail(self, session: ResearchSession, stage: str, message: str) -> None:
        if session.status.is_terminal:
            return
        self._graph_builders.pop(session.id, None)
        session.record_error(stage, message)
        await self._advance(session, SessionStatus.FAILED)
        self._emit(EventType.ERROR, session, stage=stage, message=message)

    async def _mark_cancelled(self, session: ResearchSession) -> None:
        if session.status.is_terminal:
            return
        self._graph_builders.pop(session.id, None)
        logger.info(f"Session {session.id} cancelled during {session.status.value}")
        await self._advance(session, SessionStatus.CANCELLED)
        self._emit(EventType.CANCELLED, session, sources=len(session.sources))

    async def _save(self, session: ResearchSession) -> None:
        if self._store is not None:
            await asyncio.to_thread(self._store.save, session)
