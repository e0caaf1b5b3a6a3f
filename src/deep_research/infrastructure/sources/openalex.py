"""
OpenAlex Integration

API Documentation: https://docs.openalex.org/

Features:
- Completely free and open (no API key required)
- Open access filter built in
- Comprehensive coverage (200M+ works)
- Citing works via the ``cites:`` filter, related works listed per record
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from deep_research.domain.entities import Author, SearchQuery, SearchResult
from deep_research.domain.entities.research import OPENALEX

from .base import SourceAdapter
from .base_client import _CONTINUE, BaseAPIClient

logger = logging.getLogger(__name__)

# OpenAlex API endpoints
OA_API_BASE = "https://api.openalex.org"
OA_WORKS_URL = f"{OA_API_BASE}/works"

# Polite pool email (required for higher rate limits)
DEFAULT_EMAIL = "deep-research@example.com"

_MAX_AUTHORS = 10


class OpenAlexAdapter(BaseAPIClient, SourceAdapter):
    """
    OpenAlex API client.

    Usage:
        adapter = OpenAlexAdapter(email="your@email.com")
        response = await adapter.search(SearchQuery("CRISPR gene editing", limit=10))
    """

    _service_name = "OpenAlex"
    id = OPENALEX
    name = "OpenAlex"
    citation_counts = True
    related_papers = True

    def __init__(self, email: str | None = None, timeout: float = 30.0):
        """
        Initialize client.

        Args:
            email: Email for polite pool (higher rate limits)
            timeout: Request timeout in seconds
        """
        self._email = email or DEFAULT_EMAIL
        super().__init__(
            timeout=timeout,
            min_interval=0.1,
            headers={
                "User-Agent": f"deep-research-core/1.0 (mailto:{self._email})",
                "Accept": "application/json",
            },
        )

    def _handle_expected_status(self, response, url):
        if response.status_code == 404:
            logger.debug(f"OpenAlex: work not found - {url}")
            return None
        return _CONTINUE

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        filters = []
        if query.year_range and query.year_range.start:
            filters.append(f"from_publication_date:{query.year_range.start}-01-01")
        if query.year_range and query.year_range.end:
            filters.append(f"to_publication_date:{query.year_range.end}-12-31")
        if query.open_access_only:
            filters.append("is_oa:true")

        per_page = min(query.limit, 200)
        params: dict[str, Any] = {
            "search": query.text,
            "per_page": per_page,
            "page": query.offset // per_page + 1,
            "mailto": self._email,
        }
        if filters:
            params["filter"] = ",".join(filters)

        data = await self._make_request(OA_WORKS_URL, params=params)
        if not isinstance(data, dict):
            return [], 0

        works = data.get("results", []) or []
        total = (data.get("meta") or {}).get("count", len(works))
        return [self._normalize_work(w) for w in works], total

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        """
        Get work by OpenAlex ID, DOI, or PMID.

        Args:
            identifier: e.g. "W2741809807", "10.1234/example", "pmid:12345678"
        """
        if identifier.startswith("10."):
            identifier = f"doi:{identifier}"
        elif identifier.isdigit():
            identifier = f"pmid:{identifier}"

        encoded_id = urllib.parse.quote(identifier, safe=":")
        data = await self._make_request(f"{OA_WORKS_URL}/{encoded_id}", params={"mailto": self._email})
        if not isinstance(data, dict):
            return None
        return self._normalize_work(data)

    async def get_citations(self, identifier: str, limit: int = 20) -> list[SearchResult]:
        params = {
            "filter": f"cites:{self._short_id(identifier)}",
            "per_page": min(limit, 200),
            "sort": "cited_by_count:desc",
            "mailto": self._email,
        }
        data = await self._make_request(OA_WORKS_URL, params=params)
        if not isinstance(data, dict):
            return []
        return [self._normalize_work(w) for w in data.get("results", [])]

    async def get_related(self, identifier: str, limit: int = 10) -> list[SearchResult]:
        work = await self._make_request(
            f"{OA_WORKS_URL}/{self._short_id(identifier)}", params={"mailto": self._email}
        )
        if not isinstance(work, dict):
            return []
        related = [self._short_id(w) for w in (work.get("related_works") or [])[:limit]]
        if not related:
            return []
        params = {
            "filter": "openalex:" + "|".join(related),
            "per_page": len(related),
            "mailto": self._email,
        }
        data = await self._make_request(OA_WORKS_URL, params=params)
        if not isinstance(data, dict):
            return []
        return [self._normalize_work(w) for w in data.get("results", [])]

    @staticmethod
    def _short_id(identifier: str) -> str:
        return identifier.replace("https://openalex.org/", "")

    def _normalize_work(self, work: dict[str, Any]) -> SearchResult:
        """Normalize an OpenAlex work."""
        ids = work.get("ids", {}) or {}
        doi = work.get("doi") or ids.get("doi") or None
        if doi:
            doi = doi.replace("https://doi.org/", "")

        pmid = ids.get("pmid") or None
        if pmid:
            pmid = pmid.replace("https://pubmed.ncbi.nlm.nih.gov/", "").rstrip("/")

        pmcid = ids.get("pmcid") or None
        if pmcid:
            pmcid = "PMC" + pmcid.rstrip("/").split("PMC")[-1]

        authors = []
        for authorship in (work.get("authorships", []) or [])[:_MAX_AUTHORS]:
            author = authorship.get("author", {}) or {}
            name = author.get("display_name", "")
            if not name:
                continue
            institutions = [
                inst.get("display_name", "")
                for inst in authorship.get("institutions", []) or []
                if inst.get("display_name")
            ]
            orcid = author.get("orcid")
            if orcid:
                orcid = orcid.replace("https://orcid.org/", "")
            authors.append(Author.from_full_name(name, affiliations=institutions, orcid=orcid))

        primary_location = work.get("primary_location", {}) or {}
        venue = primary_location.get("source", {}) or {}
        biblio = work.get("biblio", {}) or {}
        oa = work.get("open_access", {}) or {}
        best_oa = work.get("best_oa_location", {}) or {}

        pages = None
        if biblio.get("first_page"):
            pages = biblio["first_page"]
            if biblio.get("last_page"):
                pages = f"{pages}-{biblio['last_page']}"

        work_id = self._short_id(work.get("id", ""))
        return SearchResult(
            id=work_id,
            source=self.id,
            title=work.get("display_name") or work.get("title") or "",
            authors=authors,
            abstract=self._get_abstract(work),
            year=work.get("publication_year"),
            doi=doi,
            pmid=pmid,
            pmcid=pmcid,
            journal=venue.get("display_name") or None,
            volume=biblio.get("volume"),
            issue=biblio.get("issue"),
            pages=pages,
            url=work.get("id") or None,
            pdf_url=best_oa.get("pdf_url"),
            citation_count=work.get("cited_by_count"),
            open_access=bool(oa.get("is_oa", False)),
            keywords=[k.get("display_name", "") for k in work.get("keywords", []) or [] if k.get("display_name")],
            categories=[c.get("display_name", "") for c in (work.get("concepts", []) or [])[:5] if c.get("display_name")],
            publication_types=[work["type"]] if work.get("type") else [],
        )

    @staticmethod
    def _get_abstract(work: dict[str, Any]) -> str:
        """
        Rebuild the abstract from OpenAlex's inverted index.

        Format: {"word": [positions], ...}
        """
        abstract_index = work.get("abstract_inverted_index")
        if not abstract_index:
            return ""
        word_positions = [(pos, word) for word, positions in abstract_index.items() for pos in positions]
        word_positions.sort(key=lambda x: x[0])
        return " ".join(word for _, word in word_positions)
