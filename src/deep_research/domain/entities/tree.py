"""
Exploration Tree Entities - Arena of Research Sub-questions

Nodes live in a flat ``id -> ExplorationNode`` mapping; parent/child links
are ids resolved through that mapping. Concurrent node tasks therefore only
ever touch their own node, and the whole tree serializes as plain data.

Shape rules enforced by ``add_node``:
    - a child's parent exists and lists the child in ``children``
    - child depth == parent depth + 1 and never exceeds ``max_depth``
    - no node has more than ``max_breadth`` children

Example:
    >>> tree = ExplorationTree()
    >>> root = tree.add_root("statins and dementia")
    >>> child = tree.add_node("statin mechanisms", parent_id=root.id,
    ...                       max_depth=2, max_breadth=3, perspective_id="mechanisms")
    >>> child.depth, tree.total_nodes
    (1, 2)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from deep_research.core.exceptions import TreeInvariantError


class NodeStatus(Enum):
    PENDING = "pending"
    SEARCHING = "searching"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETE, NodeStatus.FAILED)


@dataclass
class IterationResult:
    """One search round executed by a node."""

    iteration: int
    query: str
    database: str
    sources_found: int
    learnings: list[str] = field(default_factory=list)
    new_directions: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def databases(self) -> list[str]:
        return [d for d in self.database.split(",") if d]

    @property
    def failed(self) -> bool:
        """True when every database queried in this round errored."""
        if not self.errors or self.sources_found:
            return False
        return len(self.errors) >= len(self.databases)

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "query": self.query,
            "database": self.database,
            "sources_found": self.sources_found,
            "learnings": list(self.learnings),
            "new_directions": list(self.new_directions),
            "errors": list(self.errors),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IterationResult:
        return cls(
            iteration=data["iteration"],
            query=data["query"],
            database=data.get("database", ""),
            sources_found=data.get("sources_found", 0),
            learnings=list(data.get("learnings", [])),
            new_directions=list(data.get("new_directions", [])),
            errors=list(data.get("errors", [])),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class ExplorationNode:
    id: str
    topic: str
    depth: int
    perspective_id: str | None = None
    parent_id: str | None = None
    status: NodeStatus = NodeStatus.PENDING
    iterations: list[IterationResult] = field(default_factory=list)
    source_ids: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def learnings(self) -> list[str]:
        return [item for it in self.iterations for item in it.learnings]

    @property
    def new_directions(self) -> list[str]:
        """Directions from every iteration, first occurrence wins."""
        seen: dict[str, None] = {}
        for it in self.iterations:
            for direction in it.new_directions:
                seen.setdefault(direction, None)
        return list(seen)

    def link_source(self, source_id: str) -> None:
        if source_id not in self.source_ids:
            self.source_ids.append(source_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "depth": self.depth,
            "perspective_id": self.perspective_id,
            "parent_id": self.parent_id,
            "status": self.status.value,
            "iterations": [it.to_dict() for it in self.iterations],
            "source_ids": list(self.source_ids),
            "children": list(self.children),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExplorationNode:
        return cls(
            id=data["id"],
            topic=data["topic"],
            depth=data["depth"],
            perspective_id=data.get("perspective_id"),
            parent_id=data.get("parent_id"),
            status=NodeStatus(data.get("status", "pending")),
            iterations=[IterationResult.from_dict(it) for it in data.get("iterations", [])],
            source_ids=list(data.get("source_ids", [])),
            children=list(data.get("children", [])),
        )


@dataclass
class ExplorationTree:
    root_id: str = ""
    nodes: dict[str, ExplorationNode] = field(default_factory=dict)

    # =========================================================================
    # Counters
    # =========================================================================

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def completed_nodes(self) -> int:
        """Nodes in a terminal status (complete or failed)."""
        return sum(1 for node in self.nodes.values() if node.status.is_terminal)

    @property
    def root(self) -> ExplorationNode | None:
        return self.nodes.get(self.root_id)

    # =========================================================================
    # Construction
    # =========================================================================

    def _next_id(self) -> str:
        return f"node-{len(self.nodes)}"

    def add_root(self, topic: str) -> ExplorationNode:
        if self.root_id:
            raise TreeInvariantError("Tree already has a root node")
        node = ExplorationNode(id=self._next_id(), topic=topic, depth=0)
        self.nodes[node.id] = node
        self.root_id = node.id
        return node

    def add_node(
        self,
        topic: str,
        *,
        parent_id: str,
        max_depth: int,
        max_breadth: int,
        perspective_id: str | None = None,
    ) -> ExplorationNode:
        parent = self.nodes.get(parent_id)
        if parent is None:
            raise TreeInvariantError(f"Parent node not found: {parent_id}")
        depth = parent.depth + 1
        if depth > max_depth:
            raise TreeInvariantError(f"Node depth {depth} exceeds maximum depth {max_depth}")
        if len(parent.children) >= max_breadth:
            raise TreeInvariantError(f"Node {parent_id} already has {max_breadth} children")

        node = ExplorationNode(
            id=self._next_id(),
            topic=topic,
            depth=depth,
            perspective_id=perspective_id if perspective_id is not None else parent.perspective_id,
            parent_id=parent_id,
        )
        self.nodes[node.id] = node
        parent.children.append(node.id)
        return node

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, node_id: str) -> ExplorationNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise TreeInvariantError(f"Node not found: {node_id}") from None

    def children_of(self, node_id: str) -> list[ExplorationNode]:
        return [self.nodes[c] for c in self.get(node_id).children]

    def ancestors_of(self, node_id: str) -> list[ExplorationNode]:
        result = []
        node = self.get(node_id)
        while node.parent_id is not None:
            node = self.nodes[node.parent_id]
            result.append(node)
        return result

    def pending_nodes(self) -> list[ExplorationNode]:
        return [n for n in self.nodes.values() if n.status is NodeStatus.PENDING]

    def violations(self, max_depth: int, max_breadth: int) -> list[str]:
        """Every shape rule broken by the current mapping (empty when valid)."""
        problems: list[str] = []
        if self.nodes and self.root_id not in self.nodes:
            problems.append(f"root {self.root_id!r} missing")
        for node in self.nodes.values():
            if node.depth > max_depth:
                problems.append(f"{node.id}: depth {node.depth} > {max_depth}")
            if len(node.children) > max_breadth:
                problems.append(f"{node.id}: {len(node.children)} children > {max_breadth}")
            if node.parent_id is None:
                if node.id != self.root_id:
                    problems.append(f"{node.id}: orphan")
                continue
            parent = self.nodes.get(node.parent_id)
            if parent is None:
                problems.append(f"{node.id}: parent {node.parent_id} missing")
            elif node.id not in parent.children:
                problems.append(f"{node.id}: not listed by parent {parent.id}")
            elif node.depth != parent.depth + 1:
                problems.append(f"{node.id}: depth {node.depth} != parent depth + 1")
        return problems

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_id": self.root_id,
            "nodes": {node_id: node.to_dict() for node_id, node in self.nodes.items()},
            "total_nodes": self.total_nodes,
            "completed_nodes": self.completed_nodes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExplorationTree:
        return cls(
            root_id=data.get("root_id", ""),
            nodes={
                node_id: ExplorationNode.from_dict(node)
                for node_id, node in data.get("nodes", {}).items()
            },
        )
