"""
Bibliographic source adapters.

Contains:
- base_client: httpx client with rate limiting, retry and circuit breaker
- base: SourceAdapter contract shared by every provider
- one adapter per provider (PubMed, arXiv, Semantic Scholar, OpenAlex,
  Crossref, Europe PMC, CORE)
- registry: id -> adapter lookup and discipline defaults
"""

from .arxiv import ArXivAdapter
from .base import SourceAdapter
from .base_client import BaseAPIClient
from .core import COREAdapter
from .crossref import CrossRefAdapter
from .europe_pmc import EuropePMCAdapter
from .openalex import OpenAlexAdapter
from .pubmed import PubMedAdapter
from .registry import DEFAULT_SOURCES, DISCIPLINE_SOURCES, SourceRegistry
from .semantic_scholar import SemanticScholarAdapter

__all__ = [
    "BaseAPIClient",
    "SourceAdapter",
    "SourceRegistry",
    "DEFAULT_SOURCES",
    "DISCIPLINE_SOURCES",
    "ArXivAdapter",
    "COREAdapter",
    "CrossRefAdapter",
    "EuropePMCAdapter",
    "OpenAlexAdapter",
    "PubMedAdapter",
    "SemanticScholarAdapter",
]
