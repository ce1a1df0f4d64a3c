"""Allow ``python -m src.cli`` as a shortcut for ``python -m src.cli.ingest``."""

from src.cli.ingest import main

main()
