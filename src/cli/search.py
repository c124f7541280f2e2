"""``search`` subcommand: semantic search from the terminal.

Prints the ranked fragments with their distance, the question that matched
(when the hit came from the question collection), and a short preview of the
fragment text.
"""

from __future__ import annotations

import argparse
import textwrap
from typing import Any

from src.utils.text import html_to_text

_PREVIEW_CHARS = 300


def format_hit(rank: int, hit: Any) -> str:
    """Render one :class:`RankedFragment` as a few indented lines."""
    lines = [
        f"{rank:>2}. document {hit.document_id}  fragment {hit.fragment_id}  "
        f"distance {hit.distance:.4f} ({hit.source.value})"
    ]
    if hit.matched_question:
        lines.append(f"    Q: {hit.matched_question}")
    preview = html_to_text(hit.display_text)
    lines.append(
        textwrap.indent(textwrap.shorten(preview, width=_PREVIEW_CHARS, placeholder=" ..."), "    ")
    )
    return "\n".join(lines)


async def handle_search(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Run one search and print the ranked results."""
    store = components["store"]
    try:
        response = await components["retrieval_engine"].search(
            args.query, threshold=args.threshold, limit=args.limit
        )
    finally:
        await store.close()

    print(
        f"{response.total_results} result(s) within distance {response.threshold} "
        f"in {response.processing_time_ms} ms"
    )
    for rank, hit in enumerate(response.results, start=1):
        print()
        print(format_hit(rank, hit))
    return 0
