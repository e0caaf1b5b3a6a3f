"""
SearchResult - Normalized Bibliographic Record

Every source adapter turns its provider's native payload (PubMed XML, arXiv
Atom, Semantic Scholar / OpenAlex / Crossref / Europe PMC / CORE JSON) into
this one shape. ``id`` + ``source`` identify a record before deduplication;
after merging, the surviving record keeps the best field per attribute.

Example:
    >>> result = SearchResult(
    ...     id="12345678",
    ...     source="pubmed",
    ...     title="Machine Learning in Healthcare",
    ...     doi="10.1000/example",
    ... )
    >>> result.normalized_doi
    '10.1000/example'
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any

# Resolver prefixes stripped before DOI comparison
_DOI_PREFIXES = (
    "https://doi.org/",
    "http://doi.org/",
    "https://dx.doi.org/",
    "http://dx.doi.org/",
    "doi:",
)


def normalize_doi(doi: str | None) -> str:
    """Lower-case a DOI and strip any resolver prefix."""
    if not doi:
        return ""
    doi = doi.lower().strip()
    for prefix in _DOI_PREFIXES:
        if doi.startswith(prefix):
            doi = doi[len(prefix) :]
    return doi.strip()


def normalize_title(title: str | None) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    if not title:
        return ""
    title = title.lower()
    title = re.sub(r"[^\w\s]", "", title)
    return " ".join(title.split())


@dataclass
class Author:
    """
    Author information.

    Handles name formats from different sources:
    - PubMed: LastName / ForeName
    - Crossref: {"given": "John", "family": "Smith"}
    - OpenAlex / Semantic Scholar / CORE: a single display name
    """

    name: str
    first_name: str | None = None
    last_name: str | None = None
    affiliations: list[str] = field(default_factory=list)
    orcid: str | None = None

    @classmethod
    def from_full_name(cls, name: str, **kwargs: Any) -> Author:
        """Split "John A Smith" into first/last on the final space."""
        name = " ".join(name.split())
        first, _, last = name.rpartition(" ")
        return cls(name=name, first_name=first or None, last_name=last or None, **kwargs)

    @property
    def citation_name(self) -> str:
        """Return name in citation format: 'Smith J' or 'Smith JA'."""
        if self.last_name and self.first_name:
            initials = "".join(word[0].upper() for word in self.first_name.split() if word)
            return f"{self.last_name} {initials}"
        return self.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "affiliations": list(self.affiliations),
            "orcid": self.orcid,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Author:
        return cls(
            name=data.get("name", ""),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            affiliations=list(data.get("affiliations") or []),
            orcid=data.get("orcid"),
        )


@dataclass
class SearchResult:
    """A normalized record returned by one source adapter."""

    id: str
    source: str
    title: str
    authors: list[Author] = field(default_factory=list)
    abstract: str = ""
    year: int | None = None

    # Identifiers
    doi: str | None = None
    pmid: str | None = None
    pmcid: str | None = None
    arxiv_id: str | None = None

    # Venue
    journal: str | None = None
    volume: str | None = None
    issue: str | None = None
    pages: str | None = None

    # Access and metrics
    url: str | None = None
    pdf_url: str | None = None
    citation_count: int | None = None
    open_access: bool = False

    keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    publication_types: list[str] = field(default_factory=list)

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def key(self) -> str:
        """Provider-qualified identifier, unique before deduplication."""
        return f"{self.source}:{self.id}"

    @property
    def normalized_doi(self) -> str:
        return normalize_doi(self.doi)

    @property
    def normalized_title(self) -> str:
        return normalize_title(self.title)

    @property
    def author_string(self) -> str:
        """Short author list: "Smith J, Doe J, Lee K, et al."."""
        names = [a.citation_name for a in self.authors[:3]]
        if len(self.authors) > 3:
            names.append("et al.")
        return ", ".join(names)

    # =========================================================================
    # Merge
    # =========================================================================

    def copy(self) -> SearchResult:
        """Deep copy, so merges never touch provider responses."""
        return copy.deepcopy(self)

    def merge_from(self, other: SearchResult) -> None:
        """
        Merge data from a duplicate record into this one.

        Strategy:
        - Keep this record's values, fill the gaps from *other*
        - Larger citation count wins
        - Open access if either side is open access
        - Union of keywords / categories / publication types
        """
        if not self.abstract and other.abstract:
            self.abstract = other.abstract
        if not self.doi and other.doi:
            self.doi = other.doi
        if not self.pmid and other.pmid:
            self.pmid = other.pmid
        if not self.pmcid and other.pmcid:
            self.pmcid = other.pmcid
        if not self.arxiv_id and other.arxiv_id:
            self.arxiv_id = other.arxiv_id
        if not self.pdf_url and other.pdf_url:
            self.pdf_url = other.pdf_url
        if not self.url and other.url:
            self.url = other.url
        if not self.year and other.year:
            self.year = other.year
        if not self.journal and other.journal:
            self.journal = other.journal
        if not self.volume and other.volume:
            self.volume = other.volume
        if not self.issue and other.issue:
            self.issue = other.issue
        if not self.pages and other.pages:
            self.pages = other.pages
        if not self.authors and other.authors:
            self.authors = copy.deepcopy(other.authors)

        if other.citation_count is not None:
            if self.citation_count is None or other.citation_count > self.citation_count:
                self.citation_count = other.citation_count

        self.open_access = self.open_access or other.open_access

        for attr in ("keywords", "categories", "publication_types"):
            mine: list[str] = getattr(self, attr)
            for value in getattr(other, attr):
                if value not in mine:
                    mine.append(value)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_reference(self) -> dict[str, Any]:
        """
        Reference record for an external citation formatter (CSL-JSON shape).

        Only data is produced here; style rendering happens elsewhere.
        """
        reference: dict[str, Any] = {
            "id": self.key,
            "type": "article-journal" if self.journal else "article",
            "title": self.title,
            "author": [
                {"family": a.last_name, "given": a.first_name}
                if a.last_name
                else {"literal": a.name}
                for a in self.authors
            ],
        }
        if self.year:
            reference["issued"] = {"date-parts": [[self.year]]}
        if self.journal:
            reference["container-title"] = self.journal
        if self.volume:
            reference["volume"] = self.volume
        if self.issue:
            reference["issue"] = self.issue
        if self.pages:
            reference["page"] = self.pages
        if self.doi:
            reference["DOI"] = self.normalized_doi
        if self.pmid:
            reference["PMID"] = self.pmid
        if self.pmcid:
            reference["PMCID"] = self.pmcid
        if self.url:
            reference["URL"] = self.url
        return reference

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "title": self.title,
            "authors": [a.to_dict() for a in self.authors],
            "abstract": self.abstract,
            "year": self.year,
            "doi": self.doi,
            "pmid": self.pmid,
            "pmcid": self.pmcid,
            "arxiv_id": self.arxiv_id,
            "journal": self.journal,
            "volume": self.volume,
            "issue": self.issue,
            "pages": self.pages,
            "url": self.url,
            "pdf_url": self.pdf_url,
            "citation_count": self.citation_count,
            "open_access": self.open_access,
            "keywords": list(self.keywords),
            "categories": list(self.categories),
            "publication_types": list(self.publication_types),
        }

    @classmethod
    def _fields_from_dict(cls, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": str(data["id"]),
            "source": data["source"],
            "title": data.get("title", ""),
            "authors": [Author.from_dict(a) for a in data.get("authors", [])],
            "abstract": data.get("abstract") or "",
            "year": data.get("year"),
            "doi": data.get("doi"),
            "pmid": data.get("pmid"),
            "pmcid": data.get("pmcid"),
            "arxiv_id": data.get("arxiv_id"),
            "journal": data.get("journal"),
            "volume": data.get("volume"),
            "issue": data.get("issue"),
            "pages": data.get("pages"),
            "url": data.get("url"),
            "pdf_url": data.get("pdf_url"),
            "citation_count": data.get("citation_count"),
            "open_access": bool(data.get("open_access", False)),
            "keywords": list(data.get("keywords") or []),
            "categories": list(data.get("categories") or []),
            "publication_types": list(data.get("publication_types") or []),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchResult:
        return cls(**cls._fields_from_dict(data))
