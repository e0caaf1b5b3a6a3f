"""Tests for OpenAlexAdapter."""

from unittest.mock import AsyncMock, patch

import pytest

from deep_research.domain.entities import SearchQuery, YearRange
from deep_research.infrastructure.sources.openalex import (
    DEFAULT_EMAIL,
    OA_WORKS_URL,
    OpenAlexAdapter,
)

WORK = {
    "id": "https://openalex.org/W2741809807",
    "display_name": "Statins and dementia: a cohort study",
    "publication_year": 2021,
    "doi": "https://doi.org/10.1000/cohort.2021",
    "ids": {
        "pmid": "https://pubmed.ncbi.nlm.nih.gov/34567890",
        "pmcid": "https://www.ncbi.nlm.nih.gov/pmc/articles/PMC8000001",
    },
    "authorships": [
        {
            "author": {"display_name": "Maria Garcia", "orcid": "https://orcid.org/0000-0001-2345-6789"},
            "institutions": [{"display_name": "University of Oslo"}],
        },
        {"author": {"display_name": ""}},
    ],
    "primary_location": {"source": {"display_name": "Neurology"}},
    "biblio": {"volume": "96", "issue": "4", "first_page": "100", "last_page": "110"},
    "open_access": {"is_oa": True},
    "best_oa_location": {"pdf_url": "https://example.org/w.pdf"},
    "cited_by_count": 42,
    "abstract_inverted_index": {"Statins": [0], "reduce": [1], "risk": [2]},
    "concepts": [{"display_name": "Medicine"}],
    "type": "article",
}


@pytest.fixture
def adapter():
    a = OpenAlexAdapter(email="test@example.com")
    a._min_interval = 0
    return a


# ============================================================
# Init
# ============================================================


class TestInit:
    def test_defaults(self):
        adapter = OpenAlexAdapter()

        assert adapter._email == DEFAULT_EMAIL
        assert adapter.id == "openalex"
        assert adapter.supports_citation_count()
        assert not adapter.supports_full_text()


# ============================================================
# search
# ============================================================


class TestSearch:
    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_basic(self, mock_req, adapter):
        mock_req.return_value = {"results": [WORK], "meta": {"count": 321}}

        response = await adapter.search(SearchQuery("statins dementia", limit=10))

        assert response.total == 321
        assert response.source == "openalex"
        assert [r.id for r in response.results] == ["W2741809807"]
        params = mock_req.call_args.kwargs["params"]
        assert params["search"] == "statins dementia"
        assert params["per_page"] == 10
        assert params["page"] == 1
        assert "filter" not in params

    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_filters_and_paging(self, mock_req, adapter):
        mock_req.return_value = {"results": []}
        query = SearchQuery("x", year_range=YearRange(2019, 2023), open_access_only=True, limit=10, offset=20)

        await adapter.search(query)

        params = mock_req.call_args.kwargs["params"]
        assert params["filter"] == "from_publication_date:2019-01-01,to_publication_date:2023-12-31,is_oa:true"
        assert params["page"] == 3

    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_not_found_is_empty(self, mock_req, adapter):
        mock_req.return_value = None

        response = await adapter.search(SearchQuery("x"))

        assert response.results == []
        assert response.total == 0


# ============================================================
# Lookups
# ============================================================


class TestLookups:
    @pytest.mark.parametrize(
        ("identifier", "path"),
        [
            ("10.1000/x", "doi:10.1000%2Fx"),
            ("34567890", "pmid:34567890"),
            ("W123", "W123"),
        ],
    )
    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_get_by_id_prefixes(self, mock_req, adapter, identifier, path):
        mock_req.return_value = WORK

        result = await adapter.get_by_id(identifier)

        assert result.doi == "10.1000/cohort.2021"
        assert mock_req.call_args.args[0] == f"{OA_WORKS_URL}/{path}"

    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_citations_use_cites_filter(self, mock_req, adapter):
        mock_req.return_value = {"results": [WORK]}

        results = await adapter.get_citations("https://openalex.org/W1", limit=5)

        assert len(results) == 1
        assert mock_req.call_args.kwargs["params"]["filter"] == "cites:W1"

    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_related_fetches_listed_works(self, mock_req, adapter):
        mock_req.side_effect = [
            {"related_works": ["https://openalex.org/W2", "https://openalex.org/W3"]},
            {"results": [WORK, WORK]},
        ]

        results = await adapter.get_related("W1")

        assert len(results) == 2
        assert mock_req.call_args.kwargs["params"]["filter"] == "openalex:W2|W3"

    @patch.object(OpenAlexAdapter, "_make_request", new_callable=AsyncMock)
    async def test_related_without_list(self, mock_req, adapter):
        mock_req.return_value = {"related_works": []}

        assert await adapter.get_related("W1") == []
        assert mock_req.await_count == 1


# ============================================================
# Normalization
# ============================================================


class TestNormalize:
    def test_full_work(self, adapter):
        result = adapter._normalize_work(WORK)

        assert result.title == "Statins and dementia: a cohort study"
        assert result.pmid == "34567890"
        assert result.pmcid == "PMC8000001"
        assert result.journal == "Neurology"
        assert result.pages == "100-110"
        assert result.open_access
        assert result.pdf_url == "https://example.org/w.pdf"
        assert result.citation_count == 42
        assert result.abstract == "Statins reduce risk"
        assert result.publication_types == ["article"]
        assert len(result.authors) == 1
        assert result.authors[0].last_name == "Garcia"
        assert result.authors[0].orcid == "0000-0001-2345-6789"
        assert result.authors[0].affiliations == ["University of Oslo"]

    def test_sparse_work(self, adapter):
        result = adapter._normalize_work({"id": "https://openalex.org/W9", "title": "Bare"})

        assert result.id == "W9"
        assert result.title == "Bare"
        assert result.abstract == ""
        assert result.doi is None
        assert not result.open_access
