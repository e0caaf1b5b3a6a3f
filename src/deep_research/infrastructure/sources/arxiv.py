"""
arXiv Integration

Preprints in physics, mathematics, computer science, quantitative biology,
statistics and related fields, queried through the Atom export API.

API Documentation: https://info.arxiv.org/help/api/user-manual.html

Every arXiv record is open access and carries a PDF link.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import defusedxml.ElementTree as ET  # Security: prevent XML attacks

from deep_research.core.exceptions import ParseError
from deep_research.domain.entities import Author, SearchQuery, SearchResult
from deep_research.domain.entities.research import ARXIV

from .base import SourceAdapter
from .base_client import BaseAPIClient

logger = logging.getLogger(__name__)

ARXIV_API_URL = "https://export.arxiv.org/api/query"

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
    "opensearch": "http://a9.com/-/spec/opensearch/1.1/",
}

_ID_PATTERN = re.compile(r"arxiv\.org/abs/(.+)")
_VERSION_SUFFIX = re.compile(r"v\d+$")


class ArXivAdapter(BaseAPIClient, SourceAdapter):
    """Client for the arXiv API."""

    _service_name = "arXiv"
    id = ARXIV
    name = "arXiv"
    full_text = True

    def __init__(self, timeout: float = 30.0):
        # arXiv asks for one request every three seconds
        super().__init__(timeout=timeout, min_interval=3.0)

    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        params = {
            "search_query": self._build_search_query(query),
            "start": query.offset,
            "max_results": min(query.limit, 100),
            "sortBy": "relevance",
            "sortOrder": "descending",
        }
        logger.info(f"arXiv search: {params['search_query']}")
        xml_text = await self._make_request(ARXIV_API_URL, params=params, expect_json=False)
        return self._parse_atom_response(xml_text)

    @staticmethod
    def _build_search_query(query: SearchQuery) -> str:
        # Field syntax characters would be read as arXiv operators
        escaped = query.text.replace(":", " ").replace("(", " ").replace(")", " ")
        parts = [f"all:{' '.join(escaped.split())}"]

        if query.categories:
            cat_query = " OR ".join(f"cat:{cat}*" for cat in query.categories)
            parts.append(f"({cat_query})")

        if query.year_range and (query.year_range.start or query.year_range.end):
            start = query.year_range.start or 1991
            end = query.year_range.end or 9999
            parts.append(f"submittedDate:[{start}01010000 TO {end}12312359]")

        return " AND ".join(parts)

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        xml_text = await self._make_request(
            ARXIV_API_URL, params={"id_list": identifier}, expect_json=False
        )
        results, _ = self._parse_atom_response(xml_text)
        return results[0] if results else None

    def _parse_atom_response(self, xml_text: str) -> tuple[list[SearchResult], int]:
        """Parse Atom XML response from arXiv."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ParseError(str(e), source=self.id) from e

        results = []
        for entry in root.findall("atom:entry", NAMESPACES):
            result = self._parse_entry(entry)
            if result is not None:
                results.append(result)

        total_elem = root.find("opensearch:totalResults", NAMESPACES)
        total = int(total_elem.text) if total_elem is not None and total_elem.text else len(results)
        return results, total

    def _parse_entry(self, entry: Any) -> SearchResult | None:
        id_text = _text(entry, "atom:id")
        match = _ID_PATTERN.search(id_text)
        if not match:
            # The API reports query errors as an entry without an abs/ id
            logger.warning(f"Skipping arXiv entry without id: {id_text!r}")
            return None
        versioned_id = match.group(1)

        authors = []
        for author in entry.findall("atom:author", NAMESPACES):
            name = _text(author, "atom:name")
            if name:
                affiliations = [
                    a.text for a in author.findall("arxiv:affiliation", NAMESPACES) if a.text
                ]
                authors.append(Author.from_full_name(name, affiliations=affiliations))

        pdf_url = None
        for link in entry.findall("atom:link", NAMESPACES):
            if link.get("title") == "pdf":
                pdf_url = link.get("href")
                break

        published = _text(entry, "atom:published")
        return SearchResult(
            id=versioned_id,
            source=self.id,
            title=" ".join(_text(entry, "atom:title").split()),
            authors=authors,
            abstract=" ".join(_text(entry, "atom:summary").split()),
            year=int(published[:4]) if published[:4].isdigit() else None,
            doi=_text(entry, "arxiv:doi") or None,
            arxiv_id=_VERSION_SUFFIX.sub("", versioned_id),
            journal=_text(entry, "arxiv:journal_ref") or None,
            url=f"https://arxiv.org/abs/{versioned_id}",
            pdf_url=pdf_url,
            open_access=True,
            categories=[c.get("term") for c in entry.findall("atom:category", NAMESPACES) if c.get("term")],
            publication_types=["preprint"],
        )


def _text(element: Any, path: str) -> str:
    found = element.find(path, NAMESPACES)
    if found is None or not found.text:
        return ""
    return found.text.strip()
