# =============================================================================
# src/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# Command-line tools for operators who work with the wiki index outside the
# HTTP API.  All subcommands live behind one parser:
#
#   python -m src.cli <command> [options]
#
#   ingest.py  — parser, browsing, indexing, forget, stats, init-db
#   search.py  — the ``search`` subcommand and its result formatting
#
# Architecture Notes:
#   - argparse for argument parsing.
#   - Heavy imports (OpenAI SDK, SQLAlchemy engine) are deferred inside
#     functions to keep ``--help`` fast.
#   - Components come from ``src.main.build_components`` so the CLI and the
#     server share one wiring.
# =============================================================================

"""CLI tools for the Wiki RAG service.

- ``python -m src.cli`` — browse spaces, index pages, remove documents,
  show store statistics, and run semantic searches.
"""
