# =============================================================================
# src/cli/ingest.py — Wiki RAG command line
# =============================================================================
#
# Operator CLI for the fragment store: browse the wiki, index pages, remove
# documents, show store statistics, and run a semantic search.
#
# Supported subcommands:
#
#   init-db            — Create the database, pgvector extension, schema, tables
#   spaces             — List global wiki spaces
#   pages              — List the root pages of a space
#   index              — (Re-)index one or more pages
#   index-space        — Index every page of a space (roots + descendants)
#   index-descendants  — Index pages together with everything below them
#   forget             — Remove a page's fragments and questions
#   stats              — Show fragment store statistics
#   search             — Semantic search (see search.py)
#
# The object graph comes from ``src.main.build_components`` so the CLI and
# the API server share the same wiring.  Heavy imports are deferred inside
# the handlers to keep ``--help`` fast.
# =============================================================================

"""Command line for indexing wiki pages and querying the fragment store.

Usage::

    python -m src.cli init-db
    python -m src.cli spaces
    python -m src.cli pages --space ENG
    python -m src.cli index --page 12345 --page 67890
    python -m src.cli index-space --space ENG
    python -m src.cli index-descendants --root 12345 --max-depth 3
    python -m src.cli forget --page 12345
    python -m src.cli stats
    python -m src.cli search "how do I rotate the API keys?" --threshold 0.5
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from src.config.settings import Settings
from src.utils.errors import WikiRagError

# Commands that only talk to the wiki skip the OpenAI / PostgreSQL check.
_WIKI_ONLY_COMMANDS = frozenset({"spaces", "pages"})


def _build_components(app_settings: Settings) -> dict[str, Any]:
    """Assemble the same components the API server uses."""
    from src.config.loader import load_app_config
    from src.main import build_components

    return build_components(load_app_config(app_settings))


def _print_progress(event: Any) -> None:
    """Progress listener printing one line per stage transition."""
    line = f"  [{event.progress:>3}%] {event.document_id:<12} {event.stage.value}"
    if event.error:
        line += f"  ERROR: {event.error}"
    print(line)


def _print_results(results: list[Any]) -> int:
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]

    print("\nIndexing complete:")
    print(f"  Documents:  {len(results)} ({len(succeeded)} ok, {len(failed)} failed)")
    print(f"  Fragments:  {sum(r.fragments_saved for r in results)}")
    print(f"  Questions:  {sum(r.questions_saved for r in results)}")
    print(f"  Tokens:     {sum(r.tokens_used for r in results)}")
    print(f"  Est. cost:  ${sum(r.estimated_cost for r in results):.4f}")
    for result in failed:
        print(f"  FAILED {result.document_id}: {result.error}", file=sys.stderr)
    return 0 if not failed else 1


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_init_db(components: dict[str, Any]) -> int:
    """Create the database (if missing) and the fragment tables."""
    store = components["store"]
    try:
        await store.initialize()
    finally:
        await store.close()
    print(f"Fragment store ready ({store.get_provider_name()}).")
    return 0


async def _handle_spaces(components: dict[str, Any]) -> int:
    source = components["content_source_factory"]()
    try:
        spaces = await source.list_spaces()
    finally:
        await source.close()

    if not spaces:
        print("No global spaces visible to this token.")
        return 0
    for space in spaces:
        print(f"  {space.key:<15} {space.name}")
    return 0


async def _handle_pages(args: argparse.Namespace, components: dict[str, Any]) -> int:
    source = components["content_source_factory"]()
    try:
        pages = await source.list_root_pages(args.space)
    finally:
        await source.close()

    if not pages:
        print(f"No root pages in space {args.space}.")
        return 0
    for page in pages:
        marker = "+" if page.has_children else " "
        print(f"  {marker} {page.id:<12} {page.title}")
    return 0


async def _index(document_ids: list[str], components: dict[str, Any], source: Any) -> int:
    """Run the coordinator over *document_ids* and print a summary."""
    if not document_ids:
        print("Nothing to index.")
        return 0

    print(f"Indexing {len(document_ids)} document(s)...")
    store = components["store"]
    try:
        await store.initialize()
        results = await components["coordinator"].process_documents(
            document_ids, source, on_progress=_print_progress
        )
    finally:
        await store.close()
    return _print_results(results)


async def _handle_index(args: argparse.Namespace, components: dict[str, Any]) -> int:
    source = components["content_source_factory"]()
    try:
        return await _index(args.page, components, source)
    finally:
        await source.close()


async def _handle_index_space(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Index every page of a space: its root pages and all their descendants."""
    source = components["content_source_factory"]()
    try:
        roots = await source.list_root_pages(args.space)
        document_ids = await components["coordinator"].expand_roots(
            [page.id for page in roots], source
        )
        print(f"Space {args.space}: {len(roots)} root page(s), {len(document_ids)} page(s) total")
        return await _index(document_ids, components, source)
    finally:
        await source.close()


async def _handle_index_descendants(
    args: argparse.Namespace, components: dict[str, Any]
) -> int:
    source = components["content_source_factory"]()
    try:
        document_ids = await components["coordinator"].expand_roots(
            args.root, source, max_depth=args.max_depth
        )
        return await _index(document_ids, components, source)
    finally:
        await source.close()


async def _handle_forget(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Delete every stored fragment (and question) of a page."""
    store = components["store"]
    try:
        deleted = await store.delete_by_document_id(args.page)
    finally:
        await store.close()
    print(f"Deleted {deleted} fragment(s) of document {args.page}.")
    return 0


async def _handle_stats(components: dict[str, Any]) -> int:
    """Display fragment store statistics."""
    store = components["store"]
    try:
        stats = await store.get_stats()
    finally:
        await store.close()

    print("Fragment Store Statistics")
    print("=" * 40)
    print(f"  Documents:                    {stats.documents}")
    print(f"  Fragments:                    {stats.fragments}")
    print(f"  Questions:                    {stats.questions}")
    print(f"  Fragments without embedding:  {stats.fragments_without_embedding}")
    print(f"  Questions without embedding:  {stats.questions_without_embedding}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the wiki RAG CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Index wiki pages and search the fragment store.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init-db", help="Create the database, schema and tables")
    subparsers.add_parser("spaces", help="List global wiki spaces")

    pages_parser = subparsers.add_parser("pages", help="List the root pages of a space")
    pages_parser.add_argument("--space", required=True, help="Space key")

    index_parser = subparsers.add_parser("index", help="Index one or more pages")
    index_parser.add_argument(
        "--page", required=True, action="append", help="Page id (repeatable)"
    )

    space_parser = subparsers.add_parser("index-space", help="Index every page of a space")
    space_parser.add_argument("--space", required=True, help="Space key")

    desc_parser = subparsers.add_parser(
        "index-descendants", help="Index pages and everything below them"
    )
    desc_parser.add_argument(
        "--root", required=True, action="append", help="Root page id (repeatable)"
    )
    desc_parser.add_argument(
        "--max-depth", type=int, default=None, dest="max_depth", help="Levels below each root"
    )

    forget_parser = subparsers.add_parser("forget", help="Remove a page from the index")
    forget_parser.add_argument("--page", required=True, help="Page id")

    subparsers.add_parser("stats", help="Show fragment store statistics")

    search_parser = subparsers.add_parser("search", help="Semantic search")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Maximum cosine distance (lower is stricter)",
    )
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results")

    return parser


async def _dispatch(args: argparse.Namespace, components: dict[str, Any]) -> int:
    if args.command == "init-db":
        return await _handle_init_db(components)
    if args.command == "spaces":
        return await _handle_spaces(components)
    if args.command == "pages":
        return await _handle_pages(args, components)
    if args.command == "index":
        return await _handle_index(args, components)
    if args.command == "index-space":
        return await _handle_index_space(args, components)
    if args.command == "index-descendants":
        return await _handle_index_descendants(args, components)
    if args.command == "forget":
        return await _handle_forget(args, components)
    if args.command == "stats":
        return await _handle_stats(components)
    if args.command == "search":
        from src.cli.search import handle_search

        return await handle_search(args, components)
    return 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads settings from the environment / ``.env``,
    checks the required variables for commands that need OpenAI or
    PostgreSQL, and dispatches to the handler.  Domain errors are reported
    on stderr with exit code 1.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    try:
        if args.command not in _WIKI_ONLY_COMMANDS:
            app_settings.validate_required()
        components = _build_components(app_settings)
        exit_code = asyncio.run(_dispatch(args, components))
    except WikiRagError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
