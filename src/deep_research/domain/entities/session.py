"""
Research Session - Root Aggregate

Status moves forward only::

    clarifying → planning → researching → analyzing → reviewing → synthesizing → complete

``clarifying`` is optional and any later stage may be skipped forward.
``failed`` and ``cancelled`` are reachable from every non-terminal status.
Terminal statuses never change again.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from deep_research.core.exceptions import InvalidStateTransitionError

from .citation import CitationGraph
from .consensus import ConsensusData
from .research import (
    Perspective,
    ResearchConfig,
    ResearchMode,
    ResearchSource,
    get_default_config,
)
from .synthesis import Synthesis
from .tree import ExplorationTree

# Share of progress carried by each measure
_SOURCE_WEIGHT = 0.5
_NODE_WEIGHT = 0.5


class SessionStatus(Enum):
    CLARIFYING = "clarifying"
    PLANNING = "planning"
    RESEARCHING = "researching"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETE, SessionStatus.FAILED, SessionStatus.CANCELLED)


_FORWARD_ORDER = [
    SessionStatus.CLARIFYING,
    SessionStatus.PLANNING,
    SessionStatus.RESEARCHING,
    SessionStatus.ANALYZING,
    SessionStatus.REVIEWING,
    SessionStatus.SYNTHESIZING,
    SessionStatus.COMPLETE,
]


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    if current.is_terminal:
        return False
    if target in (SessionStatus.FAILED, SessionStatus.CANCELLED):
        return True
    return _FORWARD_ORDER.index(target) > _FORWARD_ORDER.index(current)


def generate_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"research-{int(time.time() * 1000)}-{suffix}"


@dataclass
class Progress:
    sources_collected: int = 0
    sources_target: int = 0
    nodes_complete: int = 0
    nodes_total: int = 0
    percentage: int = 0
    current_stage: str = ""

    def recompute(self) -> int:
        """Blend source collection and node completion into a percentage."""
        source_ratio = (
            min(1.0, self.sources_collected / self.sources_target) if self.sources_target else 0.0
        )
        node_ratio = self.nodes_complete / self.nodes_total if self.nodes_total else 0.0
        self.percentage = round(100 * (_SOURCE_WEIGHT * source_ratio + _NODE_WEIGHT * node_ratio))
        return self.percentage

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources_collected": self.sources_collected,
            "sources_target": self.sources_target,
            "nodes_complete": self.nodes_complete,
            "nodes_total": self.nodes_total,
            "percentage": self.percentage,
            "current_stage": self.current_stage,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Progress:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class SessionError:
    stage: str
    message: str
    source: str | None = None
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "message": self.message,
            "source": self.source,
            "node_id": self.node_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionError:
        return cls(
            stage=data.get("stage", ""),
            message=data.get("message", ""),
            source=data.get("source"),
            node_id=data.get("node_id"),
        )


@dataclass
class ResearchSession:
    id: str
    user_id: str
    topic: str
    mode: ResearchMode
    config: ResearchConfig
    status: SessionStatus = SessionStatus.PLANNING
    perspectives: list[Perspective] = field(default_factory=list)
    tree: ExplorationTree = field(default_factory=ExplorationTree)
    sources: list[ResearchSource] = field(default_factory=list)
    citation_graph: CitationGraph = field(default_factory=CitationGraph)
    consensus: ConsensusData | None = None
    synthesis: Synthesis | None = None
    progress: Progress = field(default_factory=Progress)
    errors: list[SessionError] = field(default_factory=list)
    clarifying_questions: list[str] = field(default_factory=list)
    clarifications: dict[str, str] = field(default_factory=dict)
    early_stop_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def partial(self) -> bool:
        """True when a budget or a cancellation cut the research short."""
        return self.early_stop_reason is not None or self.status is SessionStatus.CANCELLED

    def transition_to(self, target: SessionStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidStateTransitionError(self.status.value, target.value)
        self.status = target
        self.updated_at = datetime.now(UTC)
        if target.is_terminal:
            self.completed_at = self.updated_at
        self.refresh_progress()

    def refresh_progress(self) -> int:
        self.progress.sources_collected = len(self.sources)
        self.progress.sources_target = self.config.max_sources
        self.progress.nodes_total = self.tree.total_nodes
        self.progress.nodes_complete = self.tree.completed_nodes
        self.progress.current_stage = self.status.value
        percentage = self.progress.recompute()
        if self.status is SessionStatus.COMPLETE:
            self.progress.percentage = percentage = 100
        return percentage

    def record_error(
        self,
        stage: str,
        message: str,
        *,
        source: str | None = None,
        node_id: str | None = None,
    ) -> None:
        self.errors.append(SessionError(stage=stage, message=message, source=source, node_id=node_id))

    def source_by_id(self, session_source_id: str) -> ResearchSource | None:
        return next((s for s in self.sources if s.session_id == session_source_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "topic": self.topic,
            "mode": self.mode.value,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "perspectives": [p.to_dict() for p in self.perspectives],
            "tree": self.tree.to_dict(),
            "sources": [s.to_dict() for s in self.sources],
            "citation_graph": self.citation_graph.to_dict(),
            "consensus": self.consensus.to_dict() if self.consensus else None,
            "synthesis": self.synthesis.to_dict() if self.synthesis else None,
            "progress": self.progress.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
            "clarifying_questions": list(self.clarifying_questions),
            "clarifications": dict(self.clarifications),
            "early_stop_reason": self.early_stop_reason,
            "partial": self.partial,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResearchSession:
        consensus = data.get("consensus")
        synthesis = data.get("synthesis")
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            user_id=data.get("user_id", ""),
            topic=data["topic"],
            mode=ResearchMode(data["mode"]),
            config=ResearchConfig.from_dict(data["config"]),
            status=SessionStatus(data["status"]),
            perspectives=[Perspective.from_dict(p) for p in data.get("perspectives", [])],
            tree=ExplorationTree.from_dict(data.get("tree", {})),
            sources=[ResearchSource.from_dict(s) for s in data.get("sources", [])],
            citation_graph=CitationGraph.from_dict(data.get("citation_graph", {})),
            consensus=ConsensusData.from_dict(consensus) if consensus else None,
            synthesis=Synthesis.from_dict(synthesis) if synthesis else None,
            progress=Progress.from_dict(data.get("progress", {})),
            errors=[SessionError.from_dict(e) for e in data.get("errors", [])],
            clarifying_questions=list(data.get("clarifying_questions", [])),
            clarifications=dict(data.get("clarifications", {})),
            early_stop_reason=data.get("early_stop_reason"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )


def create_research_session(
    topic: str,
    mode: ResearchMode | str = ResearchMode.STANDARD,
    user_id: str = "",
    config_overrides: dict[str, Any] | None = None,
    *,
    session_id: str | None = None,
    clarify: bool = False,
) -> ResearchSession:
    """New session seeded from the mode preset plus field overrides."""
    config = get_default_config(mode)
    mode = ResearchMode(mode)
    if config_overrides:
        config = config.with_overrides(**config_overrides)
    session = ResearchSession(
        id=session_id or generate_session_id(),
        user_id=user_id,
        topic=topic.strip(),
        mode=mode,
        config=config,
        status=SessionStatus.CLARIFYING if clarify else SessionStatus.PLANNING,
    )
    session.refresh_progress()
    return session
