"""
Deep Research command line.

Usage:
    # Deep research session
    python -m deep_research "statins and dementia" --mode quick --sources pubmed openalex

    # One-shot unified search
    python -m deep_research search "sepsis biomarkers" --sources pubmed europe-pmc --limit 10

    # Machine-readable output
    python -m deep_research "CRISPR off-target effects" --json

Environment Variables:
    NCBI_EMAIL: Email for NCBI Entrez (also used for the OpenAlex/Crossref polite pools)
    NCBI_API_KEY: Optional NCBI API key for higher rate limits
    SEMANTIC_SCHOLAR_API_KEY, CORE_API_KEY: Optional provider keys
    DEEP_RESEARCH_ADAPTER_TIMEOUT: Per-adapter timeout in seconds (default: 30)
    DEEP_RESEARCH_DATA_DIR: Session store directory (default: ~/.deep-research)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from deep_research.container import ApplicationContainer, create_container
from deep_research.core.exceptions import DeepResearchError
from deep_research.domain.entities import (
    KNOWN_SOURCES,
    ResearchMode,
    ResearchSession,
    UnifiedSearchOptions,
    UnifiedSearchResponse,
)

logger = logging.getLogger("deep_research")


def _research_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deep_research",
        description="Run a deep research session over scholarly sources",
        epilog='Use "deep_research search QUERY" for a single unified search.',
    )
    parser.add_argument("topic", help="Research topic or question")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ResearchMode],
        default=ResearchMode.STANDARD.value,
        help="Depth/breadth preset (default: standard)",
    )
    parser.add_argument("--sources", nargs="+", choices=KNOWN_SOURCES, help="Databases to search")
    parser.add_argument("--json", action="store_true", help="Print the session as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def _search_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deep_research search", description="Unified multi-source search")
    parser.add_argument("query", help="Search text")
    parser.add_argument("--sources", nargs="+", choices=KNOWN_SOURCES, help="Databases to search")
    parser.add_argument("--limit", type=int, default=20, help="Maximum results (default: 20)")
    parser.add_argument("--json", action="store_true", help="Print the response as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# =============================================================================
# Output
# =============================================================================


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _print_search(response: UnifiedSearchResponse) -> None:
    counts = ", ".join(f"{source}: {n}" for source, n in response.by_source.items())
    print(f"{len(response.results)} of {response.total} results ({counts}; {response.deduplicated} duplicates merged)")
    for i, result in enumerate(response.results, 1):
        year = f" ({result.year})" if result.year else ""
        print(f"{i:>3}. {result.title}{year} [{result.source}]")
        if result.doi:
            print(f"     doi:{result.doi}")
    for error in response.errors:
        print(f"  ! {error.source}: {error.message}")


def _print_session(session: ResearchSession) -> None:
    print(f"Session {session.id}: {session.status.value} ({len(session.sources)} sources)")
    if session.early_stop_reason:
        print(f"Stopped early: {session.early_stop_reason}")
    if session.synthesis is not None:
        print()
        print(session.synthesis.content)
        if session.synthesis.quality_score is not None:
            print()
            print(
                f"Quality {session.synthesis.quality_score.overall:.1f}/100 "
                f"after {session.synthesis.revision_count} revisions"
            )
    for error in session.errors:
        where = error.source or error.node_id or error.stage
        print(f"  ! {where}: {error.message}")


# =============================================================================
# Commands
# =============================================================================


async def _run_search(container: ApplicationContainer, args: argparse.Namespace) -> int:
    service = container.search_service()
    response = await service.search(UnifiedSearchOptions(args.query, limit=args.limit, sources=args.sources))
    if args.json:
        _print_json(response.to_dict())
    else:
        _print_search(response)
    return 0 if response.results or not response.errors else 1


async def _run_research(container: ApplicationContainer, args: argparse.Namespace) -> int:
    engine = container.research_engine()
    overrides = {"sources": args.sources} if args.sources else None
    session = await engine.run(args.topic, mode=args.mode, config_overrides=overrides)
    if args.json:
        _print_json(session.to_dict())
    else:
        _print_session(session)
    return 0 if session.synthesis is not None else 1


async def _main(command: str, args: argparse.Namespace) -> int:
    container = create_container()
    try:
        if command == "search":
            return await _run_search(container, args)
        return await _run_research(container, args)
    finally:
        await container.source_registry().close()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] == "search":
        command, args = "search", _search_parser().parse_args(argv[1:])
    else:
        command, args = "research", _research_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return asyncio.run(_main(command, args))
    except DeepResearchError as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
