"""Tests for COREAdapter."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from deep_research.domain.entities import SearchQuery, YearRange
from deep_research.infrastructure.sources import COREAdapter

WORK = {
    "id": 123456,
    "title": "Open access statin study",
    "authors": [{"name": "Sara Olsen"}, "Tom Berg", {"name": ""}],
    "abstract": "Repository copy.",
    "yearPublished": 2020,
    "identifiers": [
        {"type": "DOI", "identifier": "10.1000/core"},
        {"type": "pmid", "identifier": "31111111"},
        {"type": "ARXIV", "identifier": "2002.00002"},
    ],
    "journals": [{"title": "BMC Neurology"}],
    "links": [{"type": "download", "url": "https://core.ac.uk/download/123456.pdf"}],
    "documentType": "research",
    "citationCount": 4,
}


@pytest.fixture
def adapter():
    a = COREAdapter(api_key="key")
    a._min_interval = 0
    return a


class TestInit:
    def test_without_key_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            adapter = COREAdapter()

        assert "CORE_API_KEY not set" in caplog.text
        assert adapter._min_interval == 6.0
        assert "Authorization" not in adapter._client.headers

    def test_with_key(self):
        adapter = COREAdapter(api_key="abc")

        assert adapter._client.headers["Authorization"] == "Bearer abc"
        assert adapter._min_interval == 2.5


class TestSearch:
    @patch.object(COREAdapter, "_make_request", new_callable=AsyncMock)
    async def test_query_and_paging(self, mock_req, adapter):
        mock_req.return_value = {"totalHits": 12, "results": [WORK]}

        response = await adapter.search(SearchQuery("statins", year_range=YearRange(2018, 2021), limit=5, offset=5))

        assert response.total == 12
        params = mock_req.call_args.kwargs["params"]
        assert params["q"] == "(statins) AND yearPublished>=2018 AND yearPublished<=2021"
        assert params["offset"] == 5

    @patch.object(COREAdapter, "_make_request", new_callable=AsyncMock)
    async def test_not_found(self, mock_req, adapter):
        mock_req.return_value = None

        assert await adapter.get_by_id("1") is None


class TestNormalize:
    def test_identifiers_and_links(self, adapter):
        result = adapter._normalize_work(WORK)

        assert result.id == "123456"
        assert result.doi == "10.1000/core"
        assert result.pmid == "31111111"
        assert result.arxiv_id == "2002.00002"
        assert result.journal == "BMC Neurology"
        assert result.pdf_url == "https://core.ac.uk/download/123456.pdf"
        assert result.publication_types == ["research"]
        assert result.url == "https://core.ac.uk/works/123456"
        assert [a.name for a in result.authors] == ["Sara Olsen", "Tom Berg"]
        assert result.open_access

    def test_flat_identifier_fields(self, adapter):
        result = adapter._normalize_work(
            {"id": 7, "title": "T", "doi": "10.1/flat", "pubmedId": 42, "downloadUrl": "https://x/y.pdf"}
        )

        assert result.doi == "10.1/flat"
        assert result.pmid == "42"
        assert result.pdf_url == "https://x/y.pdf"
