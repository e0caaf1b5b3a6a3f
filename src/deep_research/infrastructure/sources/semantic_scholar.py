"""
Semantic Scholar Integration

API Documentation: https://api.semanticscholar.org/api-docs/

Features:
- Cross-domain search (not limited to biomedicine)
- Citation graph (citing papers)
- Paper recommendations for related work
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from deep_research.domain.entities import Author, SearchQuery, SearchResult
from deep_research.domain.entities.research import SEMANTIC_SCHOLAR

from .base import SourceAdapter
from .base_client import _CONTINUE, BaseAPIClient

logger = logging.getLogger(__name__)

# Semantic Scholar API endpoints
S2_API_BASE = "https://api.semanticscholar.org/graph/v1"
S2_SEARCH_URL = f"{S2_API_BASE}/paper/search"
S2_PAPER_URL = f"{S2_API_BASE}/paper"
S2_RECOMMENDATIONS_URL = "https://api.semanticscholar.org/recommendations/v1/papers/forpaper"

# Default fields to request
DEFAULT_FIELDS = [
    "paperId",
    "title",
    "abstract",
    "year",
    "authors",
    "venue",
    "publicationVenue",
    "publicationTypes",
    "fieldsOfStudy",
    "citationCount",
    "isOpenAccess",
    "openAccessPdf",
    "externalIds",  # Contains DOI, PubMed ID, etc.
    "url",
]


class SemanticScholarAdapter(BaseAPIClient, SourceAdapter):
    """
    Semantic Scholar API client.

    Usage:
        adapter = SemanticScholarAdapter()
        response = await adapter.search(SearchQuery("deep learning medical imaging"))
    """

    _service_name = "SemanticScholar"
    id = SEMANTIC_SCHOLAR
    name = "Semantic Scholar"
    citation_counts = True
    related_papers = True

    def __init__(self, api_key: str | None = None, timeout: float = 30.0):
        """
        Initialize client.

        Args:
            api_key: Optional S2 API key (raises the shared rate limit)
            timeout: Request timeout in seconds
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        super().__init__(
            timeout=timeout,
            # Conservative rate limiting without a key
            min_interval=0.1 if api_key else 1.0,
            headers=headers,
        )

    def _handle_expected_status(self, response, url):
        if response.status_code == 404:
            logger.debug(f"Semantic Scholar: paper not found - {url}")
            return None
        return _CONTINUE

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        params: dict[str, Any] = {
            "query": query.text,
            "limit": min(query.limit, 100),
            "offset": query.offset,
            "fields": ",".join(DEFAULT_FIELDS),
        }
        if query.year_range:
            start = query.year_range.start or ""
            end = query.year_range.end or ""
            params["year"] = f"{start}-{end}"
        if query.open_access_only:
            params["openAccessPdf"] = ""  # Only papers with OA PDF

        data = await self._make_request(S2_SEARCH_URL, params=params)
        if not isinstance(data, dict):
            return [], 0

        papers = data.get("data", []) or []
        return [self._normalize_paper(p) for p in papers], data.get("total", len(papers))

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        """
        Get paper by S2 id or prefixed external id.

        Args:
            identifier: e.g. "649def34f8be52c8b66281af98ae884c09aef38b",
                        "DOI:10.1234/example", "PMID:12345678", "ARXIV:2106.15928"
        """
        if identifier.startswith("10."):
            identifier = f"DOI:{identifier}"
        encoded_id = urllib.parse.quote(identifier, safe=":")
        data = await self._make_request(
            f"{S2_PAPER_URL}/{encoded_id}", params={"fields": ",".join(DEFAULT_FIELDS)}
        )
        if not isinstance(data, dict):
            return None
        return self._normalize_paper(data)

    async def get_citations(self, identifier: str, limit: int = 20) -> list[SearchResult]:
        encoded_id = urllib.parse.quote(identifier, safe=":")
        params = {"fields": ",".join(DEFAULT_FIELDS), "limit": min(limit, 1000)}
        data = await self._make_request(f"{S2_PAPER_URL}/{encoded_id}/citations", params=params)
        if not isinstance(data, dict):
            return []
        return [
            self._normalize_paper(item["citingPaper"])
            for item in data.get("data", []) or []
            if item.get("citingPaper", {}).get("paperId")
        ]

    async def get_related(self, identifier: str, limit: int = 10) -> list[SearchResult]:
        encoded_id = urllib.parse.quote(identifier, safe=":")
        params = {"fields": ",".join(DEFAULT_FIELDS), "limit": min(limit, 500)}
        data = await self._make_request(f"{S2_RECOMMENDATIONS_URL}/{encoded_id}", params=params)
        if not isinstance(data, dict):
            return []
        return [self._normalize_paper(p) for p in data.get("recommendedPapers", []) or []]

    def _normalize_paper(self, paper: dict[str, Any]) -> SearchResult:
        external_ids = paper.get("externalIds", {}) or {}
        venue = paper.get("publicationVenue") or paper.get("venue") or {}
        if isinstance(venue, dict):
            journal = venue.get("name") or None
        else:
            journal = str(venue) or None

        pmcid = external_ids.get("PubMedCentral")
        if pmcid and not str(pmcid).startswith("PMC"):
            pmcid = f"PMC{pmcid}"

        return SearchResult(
            id=paper.get("paperId", ""),
            source=self.id,
            title=paper.get("title", "") or "",
            authors=[
                Author.from_full_name(a["name"]) for a in paper.get("authors", []) or [] if a.get("name")
            ],
            abstract=paper.get("abstract", "") or "",
            year=paper.get("year"),
            doi=external_ids.get("DOI"),
            pmid=str(external_ids["PubMed"]) if external_ids.get("PubMed") else None,
            pmcid=pmcid,
            arxiv_id=external_ids.get("ArXiv"),
            journal=journal,
            url=paper.get("url"),
            pdf_url=(paper.get("openAccessPdf") or {}).get("url") or None,
            citation_count=paper.get("citationCount"),
            open_access=bool(paper.get("isOpenAccess", False)),
            categories=list(paper.get("fieldsOfStudy") or []),
            publication_types=list(paper.get("publicationTypes") or []),
        )
