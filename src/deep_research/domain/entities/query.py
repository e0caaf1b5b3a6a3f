"""
Search query and response shapes shared by adapters and the aggregator.

The same ``SearchQuery`` is accepted by a single adapter and by the unified
search; ``UnifiedSearchOptions`` only adds source selection and the dedup
switch on top of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from deep_research.core.exceptions import InvalidParameterError, InvalidQueryError

from .article import SearchResult


@dataclass(frozen=True)
class YearRange:
    """Inclusive publication year range; either bound may be open."""

    start: int | None = None
    end: int | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidParameterError(
                "year_range", (self.start, self.end), "start year <= end year"
            )

    def contains(self, year: int | None) -> bool:
        """Unknown years are never excluded."""
        if year is None:
            return True
        if self.start is not None and year < self.start:
            return False
        if self.end is not None and year > self.end:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> YearRange | None:
        if not data:
            return None
        return cls(start=data.get("start"), end=data.get("end"))


@dataclass
class SearchQuery:
    """Provider-independent query."""

    text: str
    categories: list[str] = field(default_factory=list)
    discipline: str | None = None
    year_range: YearRange | None = None
    open_access_only: bool = False
    limit: int = 20
    offset: int = 0

    def __post_init__(self) -> None:
        self.text = (self.text or "").strip()
        if not self.text:
            raise InvalidQueryError(self.text)
        if self.limit < 1:
            raise InvalidParameterError("limit", self.limit, "a positive integer")
        if self.offset < 0:
            raise InvalidParameterError("offset", self.offset, "a non-negative integer")

    @property
    def terms(self) -> list[str]:
        """Lower-cased query words longer than two characters."""
        return [t for t in self.text.lower().split() if len(t) > 2]

    def with_limit(self, limit: int) -> SearchQuery:
        return replace(self, limit=limit)


@dataclass
class UnifiedSearchOptions(SearchQuery):
    """
    Aggregator input.

    ``sources=None`` lets the discipline (or the default list) decide;
    an explicit empty list searches nothing.
    """

    sources: list[str] | None = None
    deduplicate: bool = True

    def to_query(self, limit: int | None = None) -> SearchQuery:
        return SearchQuery(
            text=self.text,
            categories=list(self.categories),
            discipline=self.discipline,
            year_range=self.year_range,
            open_access_only=self.open_access_only,
            limit=limit or self.limit,
            offset=self.offset,
        )


@dataclass
class SearchResponse:
    """One adapter's answer."""

    results: list[SearchResult]
    total: int
    source: str
    execution_time_ms: float = 0.0


@dataclass(frozen=True)
class SourceError:
    """A provider failure reported by the aggregator instead of raising."""

    source: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceError:
        return cls(source=data["source"], message=data.get("message", ""))


@dataclass
class UnifiedSearchResponse:
    """Aggregator output."""

    results: list[SearchResult]
    total: int
    by_source: dict[str, int]
    deduplicated: int
    errors: list[SourceError]
    execution_time_ms: float

    @property
    def failed_sources(self) -> list[str]:
        return [e.source for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total": self.total,
            "by_source": dict(self.by_source),
            "deduplicated": self.deduplicated,
            "errors": [e.to_dict() for e in self.errors],
            "execution_time_ms": round(self.execution_time_ms, 1),
        }
