"""
Citation Graph Entities

Directed relationships between the sources of one session. Edges point from
the citing (newer) source to the cited (older) one. The graph only grows;
``freeze()`` is called when the review loop finalizes and makes every later
mutation an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from deep_research.core.exceptions import OrchestrationError


class CitationType(Enum):
    SUPPORTING = "supporting"
    DISPUTING = "disputing"
    MENTIONING = "mentioning"
    METHODOLOGY = "methodology"
    DATA = "data"


@dataclass
class CitationNode:
    id: str
    title: str
    authors: list[str] = field(default_factory=list)
    year: int | None = None
    citation_count: int | None = None
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "year": self.year,
            "citation_count": self.citation_count,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationNode:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            authors=list(data.get("authors", [])),
            year=data.get("year"),
            citation_count=data.get("citation_count"),
            source=data.get("source", ""),
        )


@dataclass
class CitationEdge:
    from_id: str
    to_id: str
    type: CitationType
    confidence: float
    statement: str | None = None
    context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "type": self.type.value,
            "confidence": round(self.confidence, 3),
            "statement": self.statement,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationEdge:
        return cls(
            from_id=data["from"],
            to_id=data["to"],
            type=CitationType(data["type"]),
            confidence=data["confidence"],
            statement=data.get("statement"),
            context=data.get("context"),
        )


@dataclass
class CitationCluster:
    id: str
    label: str
    node_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "node_ids": list(self.node_ids)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationCluster:
        return cls(id=data["id"], label=data["label"], node_ids=list(data.get("node_ids", [])))


@dataclass
class CitationGraph:
    nodes: dict[str, CitationNode] = field(default_factory=dict)
    edges: list[CitationEdge] = field(default_factory=list)
    clusters: list[CitationCluster] = field(default_factory=list)
    frozen: bool = False

    def _check_mutable(self) -> None:
        if self.frozen:
            raise OrchestrationError("Citation graph is finalized and can no longer change")

    def add_node(self, node: CitationNode) -> None:
        self._check_mutable()
        self.nodes.setdefault(node.id, node)

    def add_edge(self, edge: CitationEdge) -> None:
        self._check_mutable()
        if edge.from_id not in self.nodes or edge.to_id not in self.nodes:
            raise OrchestrationError(f"Edge {edge.from_id} -> {edge.to_id} references unknown nodes")
        self.edges.append(edge)

    def set_clusters(self, clusters: list[CitationCluster]) -> None:
        self._check_mutable()
        self.clusters = clusters

    def freeze(self) -> None:
        self.frozen = True

    def edges_of_type(self, citation_type: CitationType) -> list[CitationEdge]:
        return [e for e in self.edges if e.type is citation_type]

    def edges_for(self, node_id: str) -> list[CitationEdge]:
        return [e for e in self.edges if node_id in (e.from_id, e.to_id)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
            "clusters": [c.to_dict() for c in self.clusters],
            "frozen": self.frozen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitationGraph:
        nodes = [CitationNode.from_dict(n) for n in data.get("nodes", [])]
        return cls(
            nodes={n.id: n for n in nodes},
            edges=[CitationEdge.from_dict(e) for e in data.get("edges", [])],
            clusters=[CitationCluster.from_dict(c) for c in data.get("clusters", [])],
            frozen=data.get("frozen", False),
        )
