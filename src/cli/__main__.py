"""Allow ``python -m src.cli`` execution."""

from src.cli.ingest import main

main()
