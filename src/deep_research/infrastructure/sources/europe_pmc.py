"""
Europe PMC Integration

API Documentation: https://europepmc.org/RestfulWebService

Features:
- 33+ million publications from PubMed, Agricola, EPO, NICE, etc.
- 6.5 million open access full text articles
- Citations network
- No API key required

Record ids are "<SOURCE>:<id>" (e.g. "MED:12345678"), the pair Europe PMC
needs to address an article.
"""

from __future__ import annotations

import logging
from typing import Any

from deep_research.domain.entities import Author, SearchQuery, SearchResult
from deep_research.domain.entities.research import EUROPE_PMC

from .base import SourceAdapter
from .base_client import BaseAPIClient

logger = logging.getLogger(__name__)

# Europe PMC API endpoints
EPMC_API_BASE = "https://www.ebi.ac.uk/europepmc/webservices/rest"
EPMC_SEARCH_URL = f"{EPMC_API_BASE}/search"


class EuropePMCAdapter(BaseAPIClient, SourceAdapter):
    """
    Europe PMC API client.

    Usage:
        adapter = EuropePMCAdapter()
        response = await adapter.search(SearchQuery("CRISPR gene editing", limit=10))
    """

    _service_name = "EuropePMC"
    id = EUROPE_PMC
    name = "Europe PMC"
    full_text = True
    citation_counts = True

    def __init__(self, timeout: float = 30.0):
        super().__init__(timeout=timeout, min_interval=0.1, headers={"Accept": "application/json"})

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        query_parts = [f"({query.text})"]
        if query.year_range and query.year_range.start:
            query_parts.append(f"FIRST_PDATE:[{query.year_range.start}-01-01 TO *]")
        if query.year_range and query.year_range.end:
            query_parts.append(f"FIRST_PDATE:[* TO {query.year_range.end}-12-31]")
        if query.open_access_only:
            query_parts.append("OPEN_ACCESS:y")

        if query.offset:
            # Europe PMC paginates by cursor only
            logger.debug(f"Europe PMC: offset {query.offset} ignored, returning first page")

        params = {
            "query": " AND ".join(query_parts),
            "resultType": "core",
            "pageSize": min(query.limit, 1000),
            "format": "json",
            "cursorMark": "*",
        }
        data = await self._make_request(EPMC_SEARCH_URL, params=params)
        if not isinstance(data, dict):
            return [], 0

        results = (data.get("resultList") or {}).get("result", []) or []
        return [self._normalize_article(r) for r in results], data.get("hitCount", len(results))

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        source, article_id = self._split_id(identifier)
        params = {
            "query": f"EXT_ID:{article_id} AND SRC:{source}",
            "resultType": "core",
            "format": "json",
        }
        data = await self._make_request(EPMC_SEARCH_URL, params=params)
        results = (data.get("resultList") or {}).get("result", []) if isinstance(data, dict) else []
        return self._normalize_article(results[0]) if results else None

    async def get_citations(self, identifier: str, limit: int = 20) -> list[SearchResult]:
        source, article_id = self._split_id(identifier)
        params = {"format": "json", "pageSize": min(limit, 1000)}
        data = await self._make_request(f"{EPMC_API_BASE}/{source}/{article_id}/citations", params=params)
        if not isinstance(data, dict):
            return []
        citations = (data.get("citationList") or {}).get("citation", []) or []
        return [self._normalize_article(c) for c in citations]

    @staticmethod
    def _split_id(identifier: str) -> tuple[str, str]:
        """Bare numeric ids are PubMed (MED) ids."""
        if ":" in identifier:
            source, article_id = identifier.split(":", 1)
            return source.upper(), article_id
        if identifier.upper().startswith("PMC"):
            return "PMC", identifier.upper()
        return "MED", identifier

    def _normalize_article(self, article: dict[str, Any]) -> SearchResult:
        """Normalize a Europe PMC record (search result or citation entry)."""
        authors = []
        for auth in (article.get("authorList") or {}).get("author", []) or []:
            full_name = auth.get("fullName", "")
            if full_name:
                authors.append(
                    Author(
                        name=full_name,
                        first_name=auth.get("firstName") or None,
                        last_name=auth.get("lastName") or None,
                    )
                )
        # Citation entries only carry the flat author string
        if not authors and article.get("authorString"):
            authors = [
                Author.from_full_name(a.strip())
                for a in article["authorString"].rstrip(".").split(",")
                if a.strip()
            ]

        year_text = str(article.get("pubYear") or (article.get("firstPublicationDate") or "")[:4])
        journal = article.get("journalTitle") or (
            (article.get("journalInfo") or {}).get("journal") or {}
        ).get("title")

        pmcid = article.get("pmcid") or None
        pdf_url = None
        for url_entry in (article.get("fullTextUrlList") or {}).get("fullTextUrl", []) or []:
            if url_entry.get("documentStyle") == "pdf" and url_entry.get("availabilityCode") == "OA":
                pdf_url = url_entry.get("url")
                break

        pub_types = (article.get("pubTypeList") or {}).get("pubType", []) or []
        if not pub_types and article.get("pubType"):
            pub_types = [article["pubType"]]

        source = article.get("source", "MED")
        article_id = str(article.get("id", ""))
        return SearchResult(
            id=f"{source}:{article_id}",
            source=self.id,
            title=article.get("title", "") or "",
            authors=authors,
            abstract=article.get("abstractText", "") or "",
            year=int(year_text) if year_text.isdigit() else None,
            doi=article.get("doi") or None,
            pmid=article.get("pmid") or None,
            pmcid=pmcid,
            journal=journal or None,
            volume=article.get("journalVolume") or None,
            issue=article.get("issue") or None,
            pages=article.get("pageInfo") or None,
            url=f"https://europepmc.org/article/{source}/{article_id}",
            pdf_url=pdf_url,
            citation_count=article.get("citedByCount"),
            open_access=article.get("isOpenAccess", "N") == "Y",
            keywords=list((article.get("keywordList") or {}).get("keyword", []) or []),
            publication_types=list(pub_types),
        )
