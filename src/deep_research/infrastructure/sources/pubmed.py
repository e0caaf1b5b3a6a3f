"""
PubMed Integration - NCBI E-utilities through Bio.Entrez

ESearch finds PMIDs, EFetch returns the MEDLINE XML that Entrez.read turns
into nested dicts, and ELink gives related and citing articles. Entrez is
blocking, so every call runs in a worker thread behind a shared rate limiter.

NCBI allows:
- Without API key: 3 requests/second
- With API key: 10 requests/second
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any
from urllib.error import HTTPError, URLError

from Bio import Entrez
from Bio.Entrez.Parser import ValidationError as EntrezValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from deep_research.core.async_utils import RateLimiter
from deep_research.core.exceptions import APIError, NetworkError, ParseError, RateLimitError
from deep_research.domain.entities import Author, SearchQuery, SearchResult
from deep_research.domain.entities.research import PUBMED

from .base import SourceAdapter

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1.0

DEFAULT_EMAIL = "deep-research@example.com"

# Transient NCBI failures worth retrying
_RETRYABLE_MESSAGES = [
    "database is not supported",
    "backend failed",
    "temporarily unavailable",
    "service unavailable",
    "rate limit",
    "too many requests",
    "server error",
    "timed out",
]


def _is_retryable_ncbi(error: BaseException) -> bool:
    """Check if an NCBI error is retryable."""
    if isinstance(error, HTTPError) and error.code in (429, 500, 502, 503):
        return True
    error_str = str(error).lower()
    return any(msg in error_str for msg in _RETRYABLE_MESSAGES)


_ncbi_retry = retry(
    stop=stop_after_attempt(MAX_RETRIES),
    wait=wait_exponential(multiplier=RETRY_DELAY, min=RETRY_DELAY, max=RETRY_DELAY * 4),
    retry=retry_if_exception(_is_retryable_ncbi),
    reraise=True,
)


class PubMedAdapter(SourceAdapter):
    """
    PubMed search via Bio.Entrez.

    Attributes:
        email: Email address required by NCBI Entrez API.
        api_key: Optional NCBI API key for higher rate limits.
    """

    id = PUBMED
    name = "PubMed"
    related_papers = True

    def __init__(self, email: str | None = None, api_key: str | None = None):
        self._email = email or DEFAULT_EMAIL
        self._api_key = api_key
        Entrez.email = self._email  # type: ignore[assignment]
        if api_key:
            Entrez.api_key = api_key  # type: ignore[assignment]
        # tenacity owns retries; keep Bio's own loop short
        Entrez.max_tries = 1
        self._limiter = RateLimiter(rate=10.0 if api_key else 3.0, per=1.0)

    # =========================================================================
    # Entrez calls
    # =========================================================================

    async def _call(self, func: Any, **kwargs: Any) -> Any:
        """Rate-limited Entrez call + parse, mapped onto provider errors."""
        try:
            return await self._call_with_retry(func, **kwargs)
        except HTTPError as e:
            if e.code == 429:
                raise RateLimitError(f"PubMed: {e}", source=self.id) from e
            raise APIError(f"PubMed HTTP {e.code}: {e.reason}", source=self.id, status_code=e.code) from e
        except URLError as e:
            raise NetworkError(f"PubMed request failed: {e.reason}", source=self.id) from e
        except RuntimeError as e:
            # Entrez.read raises RuntimeError for NCBI-side error documents
            raise APIError(f"PubMed: {e}", source=self.id) from e
        except EntrezValidationError as e:
            raise ParseError(str(e), source=self.id) from e

    @_ncbi_retry
    async def _call_with_retry(self, func: Any, **kwargs: Any) -> Any:
        await self._limiter.acquire()
        handle = await asyncio.to_thread(func, **kwargs)
        try:
            return await asyncio.to_thread(Entrez.read, handle)
        finally:
            handle.close()

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        record = await self._call(
            Entrez.esearch,
            db="pubmed",
            term=self._build_term(query),
            retmax=query.limit,
            retstart=query.offset,
            sort="relevance",
        )
        total = int(record.get("Count", 0))
        results = await self.fetch_details(list(record.get("IdList", [])))
        return results, total

    @staticmethod
    def _build_term(query: SearchQuery) -> str:
        parts = [f"({query.text})"]
        if query.year_range and (query.year_range.start or query.year_range.end):
            start = query.year_range.start or 1800
            end = query.year_range.end or 3000
            parts.append(f'("{start}"[Date - Publication] : "{end}"[Date - Publication])')
        if query.open_access_only:
            parts.append("free full text[sb]")
        return " AND ".join(parts)

    async def fetch_details(self, id_list: list[str]) -> list[SearchResult]:
        """Fetch and parse full records for a list of PMIDs."""
        if not id_list:
            return []
        papers = await self._call(Entrez.efetch, db="pubmed", id=",".join(id_list), retmode="xml")
        return [self._parse_pubmed_article(article) for article in papers.get("PubmedArticle", [])]

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        results = await self.fetch_details([identifier])
        return results[0] if results else None

    async def get_related(self, identifier: str, limit: int = 10) -> list[SearchResult]:
        return await self._linked(identifier, "pubmed_pubmed", limit)

    async def get_citations(self, identifier: str, limit: int = 20) -> list[SearchResult]:
        return await self._linked(identifier, "pubmed_pubmed_citedin", limit)

    async def _linked(self, pmid: str, linkname: str, limit: int) -> list[SearchResult]:
        record = await self._call(Entrez.elink, dbfrom="pubmed", db="pubmed", id=pmid, linkname=linkname)
        linked_ids: list[str] = []
        if record and record[0].get("LinkSetDb"):
            for linkset in record[0]["LinkSetDb"]:
                if linkset.get("LinkName") == linkname:
                    linked_ids = [str(link["Id"]) for link in linkset.get("Link", [])[:limit]]
                    break
        return await self.fetch_details(linked_ids)

    # =========================================================================
    # MEDLINE parsing
    # =========================================================================

    def _parse_pubmed_article(self, article: dict) -> SearchResult:
        """
        Parse a single PubMed article record.

        Args:
            article: Raw PubMed article data from Entrez.
        """
        medline_citation = article["MedlineCitation"]
        article_data = medline_citation["Article"]
        pubmed_data = article.get("PubmedData", {})

        pmid = str(medline_citation.get("PMID", ""))
        doi, pmc_id = self._extract_identifiers(pubmed_data)
        journal_info = self._extract_journal_info(article_data)

        return SearchResult(
            id=pmid,
            source=self.id,
            title=str(article_data.get("ArticleTitle", "")),
            authors=self._extract_authors(article_data),
            abstract=self._extract_abstract(article_data),
            year=journal_info["year"],
            doi=doi or None,
            pmid=pmid or None,
            pmcid=pmc_id or None,
            journal=journal_info["journal"],
            volume=journal_info["volume"],
            issue=journal_info["issue"],
            pages=journal_info["pages"],
            url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
            pdf_url=f"https://www.ncbi.nlm.nih.gov/pmc/articles/{pmc_id}/pdf/" if pmc_id else None,
            open_access=bool(pmc_id),
            keywords=self._extract_keywords(medline_citation) + self._extract_mesh_terms(medline_citation),
            publication_types=self._extract_publication_types(article_data),
        )

    def _extract_authors(self, article_data: dict) -> list[Author]:
        authors = []
        for author in article_data.get("AuthorList", []):
            if "LastName" in author:
                last_name = str(author["LastName"])
                fore_name = str(author.get("ForeName", ""))
                affiliations = [
                    str(aff_info["Affiliation"])
                    for aff_info in author.get("AffiliationInfo", [])
                    if "Affiliation" in aff_info
                ]
                orcid = None
                for identifier in author.get("Identifier", []):
                    if getattr(identifier, "attributes", {}).get("Source") == "ORCID":
                        orcid = str(identifier).replace("https://orcid.org/", "")
                authors.append(
                    Author(
                        name=f"{fore_name} {last_name}".strip(),
                        first_name=fore_name or None,
                        last_name=last_name,
                        affiliations=affiliations,
                        orcid=orcid,
                    )
                )
            elif "CollectiveName" in author:
                authors.append(Author(name=str(author["CollectiveName"])))
        return authors

    @staticmethod
    def _extract_abstract(article_data: dict) -> str:
        if "Abstract" in article_data and "AbstractText" in article_data["Abstract"]:
            abstract_parts = article_data["Abstract"]["AbstractText"]
            if isinstance(abstract_parts, list):
                return " ".join(str(part) for part in abstract_parts)
            return str(abstract_parts)
        return ""

    @staticmethod
    def _extract_journal_info(article_data: dict) -> dict[str, Any]:
        journal_data = article_data.get("Journal", {})
        journal_issue = journal_data.get("JournalIssue", {})
        pub_date = journal_issue.get("PubDate", {})

        year_text = str(pub_date.get("Year", ""))
        if not year_text and "MedlineDate" in pub_date:
            year_match = re.search(r"(\d{4})", str(pub_date["MedlineDate"]))
            if year_match:
                year_text = year_match.group(1)

        pagination = article_data.get("Pagination", {})
        return {
            "journal": str(journal_data.get("Title", "")) or None,
            "year": int(year_text) if year_text.isdigit() else None,
            "volume": str(journal_issue.get("Volume", "")) or None,
            "issue": str(journal_issue.get("Issue", "")) or None,
            "pages": str(pagination.get("MedlinePgn", "")) or None,
        }

    @staticmethod
    def _extract_publication_types(article_data: dict) -> list[str]:
        return [str(pt) for pt in article_data.get("PublicationTypeList", [])]

    @staticmethod
    def _extract_identifiers(pubmed_data: dict) -> tuple[str, str]:
        """Extract DOI and PMC ID from article identifiers."""
        doi = ""
        pmc_id = ""
        for aid in pubmed_data.get("ArticleIdList", []):
            id_type = getattr(aid, "attributes", {}).get("IdType")
            if id_type == "doi":
                doi = str(aid)
            elif id_type == "pmc":
                pmc_id = str(aid)
        return doi, pmc_id

    @staticmethod
    def _extract_keywords(medline_citation: dict) -> list[str]:
        keywords = []
        for kw_list in medline_citation.get("KeywordList", []):
            keywords.extend(str(kw) for kw in kw_list)
        return keywords

    @staticmethod
    def _extract_mesh_terms(medline_citation: dict) -> list[str]:
        return [
            str(mesh["DescriptorName"])
            for mesh in medline_citation.get("MeshHeadingList", [])
            if "DescriptorName" in mesh
        ]
