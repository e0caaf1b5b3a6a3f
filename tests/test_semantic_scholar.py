"""Tests for SemanticScholarAdapter."""

from unittest.mock import AsyncMock, patch

import pytest

from deep_research.domain.entities import SearchQuery, YearRange
from deep_research.infrastructure.sources.semantic_scholar import (
    S2_PAPER_URL,
    S2_RECOMMENDATIONS_URL,
    SemanticScholarAdapter,
)

PAPER = {
    "paperId": "649def34f8be52c8b66281af98ae884c09aef38b",
    "title": "Statin use and cognitive decline",
    "abstract": "A large cohort.",
    "year": 2020,
    "authors": [{"name": "John A Smith"}, {"name": ""}],
    "publicationVenue": {"name": "JAMA Neurology"},
    "publicationTypes": ["JournalArticle"],
    "fieldsOfStudy": ["Medicine"],
    "citationCount": 17,
    "isOpenAccess": True,
    "openAccessPdf": {"url": "https://example.org/p.pdf"},
    "externalIds": {"DOI": "10.1000/s2", "PubMed": 33333333, "PubMedCentral": "7000001", "ArXiv": "2001.00001"},
    "url": "https://www.semanticscholar.org/paper/649def",
}


@pytest.fixture
def adapter():
    a = SemanticScholarAdapter(api_key="key")
    a._min_interval = 0
    return a


class TestInit:
    def test_api_key_header_and_interval(self):
        with_key = SemanticScholarAdapter(api_key="secret")
        without_key = SemanticScholarAdapter()

        assert with_key._client.headers["x-api-key"] == "secret"
        assert with_key._min_interval == 0.1
        assert "x-api-key" not in without_key._client.headers
        assert without_key._min_interval == 1.0


# ============================================================
# search
# ============================================================


class TestSearch:
    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_basic(self, mock_req, adapter):
        mock_req.return_value = {"data": [PAPER], "total": 900}

        response = await adapter.search(SearchQuery("statins cognition", limit=250, offset=10))

        assert response.total == 900
        assert response.results[0].doi == "10.1000/s2"
        params = mock_req.call_args.kwargs["params"]
        assert params["limit"] == 100
        assert params["offset"] == 10
        assert "year" not in params

    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_open_year_range(self, mock_req, adapter):
        mock_req.return_value = {"data": []}

        await adapter.search(SearchQuery("x", year_range=YearRange(start=2018), open_access_only=True))

        params = mock_req.call_args.kwargs["params"]
        assert params["year"] == "2018-"
        assert params["openAccessPdf"] == ""


class TestLookups:
    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_doi_gets_prefix(self, mock_req, adapter):
        mock_req.return_value = PAPER

        await adapter.get_by_id("10.1000/s2")

        assert mock_req.call_args.args[0] == f"{S2_PAPER_URL}/DOI:10.1000%2Fs2"

    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_not_found(self, mock_req, adapter):
        mock_req.return_value = None

        assert await adapter.get_by_id("missing") is None

    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_citations_skip_entries_without_id(self, mock_req, adapter):
        mock_req.return_value = {"data": [{"citingPaper": PAPER}, {"citingPaper": {"title": "no id"}}]}

        results = await adapter.get_citations("abc")

        assert len(results) == 1
        assert mock_req.call_args.args[0] == f"{S2_PAPER_URL}/abc/citations"

    @patch.object(SemanticScholarAdapter, "_make_request", new_callable=AsyncMock)
    async def test_related_uses_recommendations(self, mock_req, adapter):
        mock_req.return_value = {"recommendedPapers": [PAPER]}

        results = await adapter.get_related("abc", limit=3)

        assert len(results) == 1
        assert mock_req.call_args.args[0] == f"{S2_RECOMMENDATIONS_URL}/abc"
        assert mock_req.call_args.kwargs["params"]["limit"] == 3


class TestNormalize:
    def test_full_paper(self, adapter):
        result = adapter._normalize_paper(PAPER)

        assert result.id == PAPER["paperId"]
        assert result.source == "semantic-scholar"
        assert result.pmid == "33333333"
        assert result.pmcid == "PMC7000001"
        assert result.arxiv_id == "2001.00001"
        assert result.journal == "JAMA Neurology"
        assert result.pdf_url == "https://example.org/p.pdf"
        assert result.open_access
        assert [a.name for a in result.authors] == ["John A Smith"]
        assert result.authors[0].first_name == "John A"

    def test_string_venue(self, adapter):
        result = adapter._normalize_paper({"paperId": "p", "title": "T", "venue": "Nature"})

        assert result.journal == "Nature"
        assert result.pdf_url is None
        assert result.citation_count is None
