"""
CrossRef API Integration

CrossRef is the official DOI registration agency for scholarly publications,
which makes it the authoritative record for DOI metadata.

API Documentation: https://api.crossref.org/swagger-ui/index.html

Rate Limits:
- Polite pool (with email): ~50 req/sec
- Anonymous: ~1 req/sec (strongly discouraged)
"""

from __future__ import annotations

import logging
import re
import urllib.parse
from typing import TYPE_CHECKING, Any

from deep_research.domain.entities import Author, SearchQuery, SearchResult, normalize_doi
from deep_research.domain.entities.research import CROSSREF

from .base import SourceAdapter
from .base_client import _CONTINUE, BaseAPIClient

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

CROSSREF_API_BASE = "https://api.crossref.org"

# Default contact email (required for polite pool)
DEFAULT_EMAIL = "deep-research@example.com"

_JATS_TAG = re.compile(r"<[^>]+>")


class CrossRefAdapter(BaseAPIClient, SourceAdapter):
    """
    CrossRef API client.

    Note:
        Always provide your email for access to the "polite pool" with
        higher rate limits. Without email, requests are severely throttled.
    """

    _service_name = "CrossRef"
    id = CROSSREF
    name = "Crossref"
    citation_counts = True

    def __init__(self, email: str | None = None, timeout: float = 30.0):
        self._email = email or DEFAULT_EMAIL
        super().__init__(
            timeout=timeout,
            min_interval=0.05,
            headers={
                "User-Agent": f"deep-research-core/1.0 (mailto:{self._email})",
                "Accept": "application/json",
            },
        )

    async def _execute_request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        method: str = "GET",
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Add mailto parameter for polite pool access."""
        params = {**(params or {}), "mailto": self._email}
        return await super()._execute_request(url, params=params, method=method, data=data, headers=headers)

    def _handle_expected_status(self, response: httpx.Response, url: str) -> Any:
        """Handle 404 (DOI not found)."""
        if response.status_code == 404:
            logger.debug(f"CrossRef: DOI not found - {url}")
            return None
        return _CONTINUE

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Any:
        """Extract 'message' key from CrossRef JSON responses."""
        data = super()._parse_response(response, expect_json)
        if isinstance(data, dict):
            return data.get("message", data)
        return data

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        params: dict[str, Any] = {
            "query": query.text,
            "rows": min(query.limit, 1000),
            "offset": query.offset,
            "sort": "relevance",
            "order": "desc",
        }
        filters = []
        if query.year_range and query.year_range.start:
            filters.append(f"from-pub-date:{query.year_range.start}")
        if query.year_range and query.year_range.end:
            filters.append(f"until-pub-date:{query.year_range.end}")
        if query.open_access_only:
            # Crossref has no OA flag; a CC license is the closest signal
            filters.append("has-license:true")
        if filters:
            params["filter"] = ",".join(filters)

        data = await self._make_request(f"{CROSSREF_API_BASE}/works", params=params)
        if not isinstance(data, dict):
            return [], 0
        items = data.get("items", []) or []
        return [self._normalize_work(item) for item in items], data.get("total-results", len(items))

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        """Get metadata for a single work by DOI (with or without doi.org prefix)."""
        doi = normalize_doi(identifier)
        if not doi:
            return None
        data = await self._make_request(f"{CROSSREF_API_BASE}/works/{urllib.parse.quote(doi, safe='')}")
        if not isinstance(data, dict):
            return None
        return self._normalize_work(data)

    def _normalize_work(self, work: dict[str, Any]) -> SearchResult:
        authors = []
        for author in work.get("author", []) or []:
            given = author.get("given", "")
            family = author.get("family", "")
            name = f"{given} {family}".strip() or author.get("name", "")
            if not name:
                continue
            orcid = author.get("ORCID")
            authors.append(
                Author(
                    name=name,
                    first_name=given or None,
                    last_name=family or None,
                    affiliations=[a["name"] for a in author.get("affiliation", []) or [] if a.get("name")],
                    orcid=orcid.replace("http://orcid.org/", "").replace("https://orcid.org/", "") if orcid else None,
                )
            )

        titles = work.get("title") or [""]
        containers = work.get("container-title") or [None]
        year, _, _ = self.extract_publication_date(work)
        doi = work.get("DOI")

        pdf_url = None
        for link in work.get("link", []) or []:
            if link.get("content-type") == "application/pdf":
                pdf_url = link.get("URL")
                break

        return SearchResult(
            id=doi or "",
            source=self.id,
            title=titles[0] or "",
            authors=authors,
            abstract=_strip_jats(work.get("abstract", "")),
            year=year,
            doi=doi,
            journal=containers[0],
            volume=work.get("volume"),
            issue=work.get("issue"),
            pages=work.get("page"),
            url=work.get("URL") or (f"https://doi.org/{doi}" if doi else None),
            pdf_url=pdf_url,
            citation_count=work.get("is-referenced-by-count"),
            open_access=bool(work.get("license")),
            keywords=list(work.get("subject") or []),
            publication_types=[work["type"]] if work.get("type") else [],
        )

    @staticmethod
    def extract_publication_date(
        work: dict[str, Any],
    ) -> tuple[int | None, int | None, int | None]:
        """
        Extract publication date from CrossRef work.

        CrossRef has multiple date fields with different granularity.
        Priority: published-print > published-online > published > created

        Returns:
            Tuple of (year, month, day) - components may be None
        """
        for field in ("published-print", "published-online", "published", "created"):
            if field in work:
                date_parts = work[field].get("date-parts", [[]])
                if date_parts and date_parts[0] and date_parts[0][0] is not None:
                    parts = date_parts[0]
                    year = parts[0]
                    month = parts[1] if len(parts) >= 2 else None
                    day = parts[2] if len(parts) >= 3 else None
                    return (year, month, day)
        return (None, None, None)


def _strip_jats(abstract: str) -> str:
    """CrossRef abstracts are JATS XML fragments."""
    if not abstract:
        return ""
    return " ".join(_JATS_TAG.sub(" ", abstract).split())
