"""Tests for the command line entry point."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from dependency_injector import providers

from deep_research.__main__ import main
from deep_research.container import create_container
from deep_research.infrastructure.sources import SourceRegistry

from .conftest import FakeAdapter


@pytest.fixture
def pubmed(statin_corpus):
    return FakeAdapter("pubmed", statin_corpus)


@pytest.fixture
def run_cli(pubmed):
    """Call ``main`` with a container whose registry only holds *pubmed*."""

    def _run(*argv: str, adapter=None) -> int:
        container = create_container({"data_dir": "", "core_api_key": "test-key"})
        container.source_registry.override(providers.Object(SourceRegistry([adapter or pubmed])))
        with patch("deep_research.__main__.create_container", return_value=container):
            return main(list(argv))

    return _run


class TestSearchCommand:
    def test_text_output(self, run_cli, pubmed, capsys):
        code = run_cli("search", "statin dementia", "--sources", "pubmed", "--limit", "3")

        out = capsys.readouterr().out
        assert code == 0
        assert out.splitlines()[0] == "3 of 3 results (pubmed: 3; 0 duplicates merged)"
        assert "  1. " in out
        assert "doi:10.1000/" in out
        assert pubmed.closed

    def test_json_output(self, run_cli, capsys):
        code = run_cli("search", "statin dementia", "--sources", "pubmed", "--limit", "2", "--json")

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert len(data["results"]) == 2
        assert data["by_source"] == {"pubmed": 2}

    def test_failing_source_exit_code(self, run_cli, provider_error, capsys):
        code = run_cli("search", "statins", "--sources", "pubmed", adapter=FakeAdapter("pubmed", error=provider_error))

        assert code == 1
        assert "  ! pubmed: " in capsys.readouterr().out

    def test_invalid_limit_is_reported(self, run_cli, pubmed):
        assert run_cli("search", "statins", "--limit", "0") == 2
        assert pubmed.closed


class TestResearchCommand:
    def test_quick_session(self, run_cli, capsys):
        code = run_cli("statin therapy dementia", "--mode", "quick", "--sources", "pubmed")

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("Session research-")
        assert ": complete (" in out.splitlines()[0]
        assert "## Overview" in out
        assert "Quality " in out

    def test_json_session(self, run_cli, capsys):
        code = run_cli("statin therapy dementia", "--mode", "quick", "--sources", "pubmed", "--json")

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["status"] == "complete"
        assert data["synthesis"]["sections"][0]["title"] == "Overview"

    def test_failed_session_exit_code(self, run_cli, capsys):
        code = run_cli("statins", "--mode", "quick", "--sources", "pubmed", adapter=FakeAdapter("pubmed"))

        assert code == 1
        assert "No sources found" in capsys.readouterr().out

    def test_unknown_source_rejected_by_parser(self, run_cli):
        with pytest.raises(SystemExit):
            run_cli("statins", "--sources", "scopus")
