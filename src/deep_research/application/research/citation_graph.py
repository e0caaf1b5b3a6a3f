"""
Citation Graph Builder

Infers directional relationships between the sources of a session from
their text. Providers rarely return citation contexts, so the builder works
on shared claims instead:

1. Claim terms per source (title + extracted findings, abstract as fallback)
2. Pairs sharing >= 3 claim terms become candidates
3. The newer publication "cites" the older one
4. The citing statement is classified by indicator phrases:

   ┌──────────────┬──────────────────────────────────────┬─────────────────────┐
   │ Type         │ Indicators (examples)                │ Confidence          │
   ├──────────────┼──────────────────────────────────────┼─────────────────────┤
   │ disputing    │ however, contrary to, contradicts    │ 0.7 + 0.1/hit ≤0.95 │
   │ methodology  │ method, protocol, adapted from       │ 0.7 + 0.1/hit ≤0.95 │
   │ supporting   │ showed, confirmed, consistent with   │ 0.7 + 0.1/hit ≤0.95 │
   │ data         │ data from, dataset, obtained from    │ 0.6 + 0.1/hit ≤0.9  │
   │ mentioning   │ (none of the above)                  │ 0.5                 │
   └──────────────┴──────────────────────────────────────┴─────────────────────┘

   Opposed stances between the two sources turn the edge into "disputing".
5. Edge confidence = type confidence × (0.6 + 0.4 × term overlap); edges
   below 0.4 are dropped.

Clusters are connected components over edges with confidence >= 0.6.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from deep_research.domain.entities import (
    CitationCluster,
    CitationEdge,
    CitationGraph,
    CitationNode,
    CitationType,
    ResearchSource,
)

from .consensus import polarity
from .extraction import claim_terms, split_sentences

logger = logging.getLogger(__name__)

MIN_SHARED_TERMS = 3
CONFIDENCE_FLOOR = 0.4
CLUSTER_CONFIDENCE = 0.6
HUB_IN_DEGREE = 5
KEY_SOURCE_THRESHOLD = 5

SUPPORTING_INDICATORS = (
    "showed",
    "demonstrated",
    "found",
    "reported",
    "confirmed",
    "validated",
    "consistent with",
    "in agreement with",
    "supports",
    "corroborates",
)
DISPUTING_INDICATORS = (
    "however",
    "contrary to",
    "in contrast",
    "disputed",
    "challenged",
    "contradicts",
    "refuted",
    "disagreed",
    "conflicts with",
    "opposed",
)
METHODOLOGY_INDICATORS = (
    "method",
    "technique",
    "approach",
    "protocol",
    "procedure",
    "following",
    "adapted from",
    "modified from",
    "as described",
)
DATA_INDICATORS = (
    "data from",
    "dataset",
    "obtained from",
    "using data",
    "data provided",
)


def classify_citation(statement: str) -> tuple[CitationType, float]:
    """Citation type and its confidence for one citing statement."""
    text = statement.lower()

    def hits(indicators: tuple[str, ...]) -> int:
        return sum(1 for i in indicators if i in text)

    # Order matters: disputing beats methodology beats supporting beats data
    for indicators, citation_type in (
        (DISPUTING_INDICATORS, CitationType.DISPUTING),
        (METHODOLOGY_INDICATORS, CitationType.METHODOLOGY),
        (SUPPORTING_INDICATORS, CitationType.SUPPORTING),
    ):
        n = hits(indicators)
        if n:
            return citation_type, 0.7 + min(n * 0.1, 0.25)

    n = hits(DATA_INDICATORS)
    if n:
        return CitationType.DATA, 0.6 + min(n * 0.1, 0.3)
    return CitationType.MENTIONING, 0.5


@dataclass
class NodeMetrics:
    in_degree: int = 0
    out_degree: int = 0

    @property
    def is_hub(self) -> bool:
        return self.in_degree > HUB_IN_DEGREE

    def to_dict(self) -> dict[str, Any]:
        return {"in_degree": self.in_degree, "out_degree": self.out_degree, "is_hub": self.is_hub}


class CitationGraphBuilder:
    """
    Incremental builder for one session's citation graph.

    Usage:
        builder = CitationGraphBuilder(session.citation_graph)
        for source in session.sources:
            builder.add_source(source)
        builder.finalize()
    """

    def __init__(
        self,
        graph: CitationGraph | None = None,
        min_shared_terms: int = MIN_SHARED_TERMS,
        confidence_floor: float = CONFIDENCE_FLOOR,
    ):
        self.graph = graph if graph is not None else CitationGraph()
        self._min_shared = min_shared_terms
        self._floor = confidence_floor
        self._sources: dict[str, ResearchSource] = {}
        self._terms: dict[str, set[str]] = {}
        self._order: dict[str, int] = {}

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    @staticmethod
    def _claim_text(source: ResearchSource) -> str:
        findings = " ".join(source.key_findings) or source.abstract
        return f"{source.title}. {findings}"

    def add_source(self, source: ResearchSource) -> list[CitationEdge]:
        """Add *source* as a node and score it against every earlier source."""
        if source.session_id in self._sources:
            return []
        self.graph.add_node(
            CitationNode(
                id=source.session_id,
                title=source.title,
                authors=[a.name for a in source.authors],
                year=source.year,
                citation_count=source.citation_count,
                source=source.source,
            )
        )
        terms = claim_terms(self._claim_text(source))
        new_edges = []
        for other_id, other in self._sources.items():
            edge = self._score_pair(source, terms, other, self._terms[other_id])
            if edge is not None:
                self.graph.add_edge(edge)
                new_edges.append(edge)

        self._order[source.session_id] = len(self._sources)
        self._sources[source.session_id] = source
        self._terms[source.session_id] = terms
        return new_edges

    def add_sources(self, sources: list[ResearchSource]) -> None:
        for source in sources:
            self.add_source(source)

    def _is_newer(self, a: ResearchSource, b: ResearchSource) -> bool:
        if a.year and b.year and a.year != b.year:
            return a.year > b.year
        # Same or unknown year: later discovery cites the earlier one
        return self._order.get(a.session_id, len(self._order)) > self._order.get(b.session_id, len(self._order))

    def _score_pair(
        self,
        source: ResearchSource,
        terms: set[str],
        other: ResearchSource,
        other_terms: set[str],
    ) -> CitationEdge | None:
        shared = terms & other_terms
        if len(shared) < self._min_shared:
            return None
        overlap = len(shared) / max(1, min(len(terms), len(other_terms)))

        citing, cited = (source, other) if self._is_newer(source, other) else (other, source)
        statement = self._citing_statement(citing, shared)
        citation_type, type_confidence = classify_citation(statement)

        stances = polarity(self._claim_text(citing)), polarity(self._claim_text(cited))
        if citation_type is not CitationType.DISPUTING and stances[0] * stances[1] < 0:
            citation_type, type_confidence = CitationType.DISPUTING, 0.75

        confidence = type_confidence * (0.6 + 0.4 * overlap)
        if confidence < self._floor:
            return None
        return CitationEdge(
            from_id=citing.session_id,
            to_id=cited.session_id,
            type=citation_type,
            confidence=round(confidence, 3),
            statement=statement or None,
            context=", ".join(sorted(shared)[:5]),
        )

    @staticmethod
    def _citing_statement(source: ResearchSource, shared: set[str]) -> str:
        """The sentence of *source* that mentions the most shared terms."""
        candidates = list(source.key_findings) + split_sentences(source.abstract)
        best, best_hits = "", 0
        for sentence in candidates:
            hits = len(claim_terms(sentence) & shared)
            if hits > best_hits:
                best, best_hits = sentence, hits
        return best

    # =========================================================================
    # Finalization
    # =========================================================================

    def clusters(self, min_confidence: float = CLUSTER_CONFIDENCE) -> list[CitationCluster]:
        """Connected components (two or more nodes) over strong edges."""
        adjacency: dict[str, set[str]] = {node_id: set() for node_id in self.graph.nodes}
        for edge in self.graph.edges:
            if edge.confidence >= min_confidence:
                adjacency[edge.from_id].add(edge.to_id)
                adjacency[edge.to_id].add(edge.from_id)

        visited: set[str] = set()
        clusters = []
        for start in self.graph.nodes:
            if start in visited:
                continue
            component = []
            stack = [start]
            while stack:
                node_id = stack.pop()
                if node_id in visited:
                    continue
                visited.add(node_id)
                component.append(node_id)
                stack.extend(adjacency[node_id] - visited)
            if len(component) > 1:
                clusters.append(
                    CitationCluster(
                        id=f"cluster-{len(clusters) + 1}",
                        label=self._label(component),
                        node_ids=sorted(component, key=lambda i: self._order.get(i, 0)),
                    )
                )
        return clusters

    def _label(self, node_ids: list[str]) -> str:
        counts: Counter[str] = Counter()
        for node_id in node_ids:
            counts.update(self._terms.get(node_id, set()))
        if not counts:
            return "Unlabelled"
        term, _ = max(counts.items(), key=lambda kv: (kv[1], -len(kv[0]), kv[0]))
        return term

    def finalize(self) -> CitationGraph:
        """Attach clusters and make the graph immutable."""
        if not self.graph.frozen:
            self.graph.set_clusters(self.clusters())
            self.graph.freeze()
            logger.info(
                f"Citation graph: {len(self.graph.nodes)} nodes, {len(self.graph.edges)} edges, "
                f"{len(self.graph.clusters)} clusters"
            )
        return self.graph


# =============================================================================
# Metrics
# =============================================================================


def citation_metrics(graph: CitationGraph) -> dict[str, NodeMetrics]:
    metrics = {node_id: NodeMetrics() for node_id in graph.nodes}
    for edge in graph.edges:
        metrics[edge.from_id].out_degree += 1
        metrics[edge.to_id].in_degree += 1
    return metrics


def key_sources(graph: CitationGraph, threshold: int = KEY_SOURCE_THRESHOLD) -> list[dict[str, Any]]:
    """Nodes cited at least *threshold* times, most cited first."""
    counts = Counter(edge.to_id for edge in graph.edges)
    keyed = [
        {"id": node_id, "title": graph.nodes[node_id].title, "citation_count": count}
        for node_id, count in counts.items()
        if count >= threshold and node_id in graph.nodes
    ]
    return sorted(keyed, key=lambda k: -k["citation_count"])


def context_distribution(graph: CitationGraph) -> dict[str, int]:
    distribution = {t.value: 0 for t in CitationType}
    for edge in graph.edges:
        distribution[edge.type.value] += 1
    return distribution


def graph_summary(graph: CitationGraph) -> dict[str, Any]:
    """Size, hubs, key sources and edge types of a finished graph."""
    metrics = citation_metrics(graph)
    return {
        "nodes": len(graph.nodes),
        "edges": len(graph.edges),
        "clusters": [c.label for c in graph.clusters],
        "hubs": sorted(node_id for node_id, m in metrics.items() if m.is_hub),
        "key_sources": key_sources(graph),
        "edge_types": context_distribution(graph),
    }
