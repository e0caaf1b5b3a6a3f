"""
Application DI Container (dependency-injector).

Centralizes adapter, search service and research engine creation.

Usage::

    from deep_research.container import create_container

    container = create_container()
    engine = container.research_engine()
    session = await engine.run("statins and dementia", mode="quick")
    await container.source_registry().close()

    # In tests - override any provider:
    container.search_service.override(providers.Object(fake_service))
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dependency_injector import containers, providers

from deep_research.application.research import EventBus, ResearchEngine
from deep_research.application.search import ResultAggregator, UnifiedSearchService
from deep_research.infrastructure.persistence import JsonFileSessionStore
from deep_research.infrastructure.sources import (
    ArXivAdapter,
    COREAdapter,
    CrossRefAdapter,
    EuropePMCAdapter,
    OpenAlexAdapter,
    PubMedAdapter,
    SemanticScholarAdapter,
    SourceAdapter,
    SourceRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "~/.deep-research"
DEFAULT_ADAPTER_TIMEOUT = 30.0


def _create_registry(*adapters: SourceAdapter) -> SourceRegistry:
    return SourceRegistry(adapters)


def _create_store(data_dir: str | None) -> JsonFileSessionStore | None:
    if not data_dir:
        return None
    return JsonFileSessionStore(Path(data_dir).expanduser())


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for Deep Research.

    Manages creation and lifecycle of:
    - one adapter per bibliographic provider
    - ``source_registry``: id -> adapter lookup
    - ``search_service``: unified fan-out search
    - ``session_store``: JSON persistence (``None`` when no data dir)
    - ``research_engine``: deep research orchestration
    """

    config = providers.Configuration()

    pubmed = providers.Singleton(PubMedAdapter, email=config.ncbi_email, api_key=config.ncbi_api_key)
    arxiv = providers.Singleton(ArXivAdapter, timeout=config.adapter_timeout)
    semantic_scholar = providers.Singleton(
        SemanticScholarAdapter,
        api_key=config.semantic_scholar_api_key,
        timeout=config.adapter_timeout,
    )
    openalex = providers.Singleton(OpenAlexAdapter, email=config.openalex_email, timeout=config.adapter_timeout)
    crossref = providers.Singleton(CrossRefAdapter, email=config.crossref_email, timeout=config.adapter_timeout)
    europe_pmc = providers.Singleton(EuropePMCAdapter, timeout=config.adapter_timeout)
    core = providers.Singleton(COREAdapter, api_key=config.core_api_key, timeout=config.adapter_timeout)

    source_registry = providers.Singleton(
        _create_registry,
        pubmed,
        arxiv,
        semantic_scholar,
        openalex,
        crossref,
        europe_pmc,
        core,
    )

    aggregator = providers.Singleton(ResultAggregator)

    search_service = providers.Singleton(
        UnifiedSearchService,
        registry=source_registry,
        aggregator=aggregator,
        adapter_timeout=config.adapter_timeout,
    )

    session_store = providers.Singleton(_create_store, data_dir=config.data_dir)

    event_bus = providers.Singleton(EventBus)

    research_engine = providers.Singleton(
        ResearchEngine,
        search_service,
        events=event_bus,
        store=session_store,
    )


def config_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Container configuration from environment variables."""
    env = os.environ if environ is None else environ
    return {
        "ncbi_email": env.get("NCBI_EMAIL") or None,
        "ncbi_api_key": env.get("NCBI_API_KEY") or None,
        "semantic_scholar_api_key": env.get("SEMANTIC_SCHOLAR_API_KEY") or None,
        "core_api_key": env.get("CORE_API_KEY") or None,
        "openalex_email": env.get("OPENALEX_EMAIL") or env.get("NCBI_EMAIL") or None,
        "crossref_email": env.get("CROSSREF_EMAIL") or env.get("NCBI_EMAIL") or None,
        "adapter_timeout": float(env.get("DEEP_RESEARCH_ADAPTER_TIMEOUT") or DEFAULT_ADAPTER_TIMEOUT),
        "data_dir": env.get("DEEP_RESEARCH_DATA_DIR", DEFAULT_DATA_DIR),
    }


def create_container(overrides: dict[str, Any] | None = None) -> ApplicationContainer:
    """Container configured from the environment, then *overrides*."""
    settings = config_from_env()
    settings.update(overrides or {})
    container = ApplicationContainer()
    container.config.from_dict(settings)
    logger.debug(f"Container configured: data_dir={settings['data_dir']!r}, timeout={settings['adapter_timeout']}")
    return container


__all__ = ["ApplicationContainer", "config_from_env", "create_container"]
