"""CLI tools for the sales-brain service.

- ``python -m src.cli.ingest`` -- ingest local files, ask questions, and
  inspect document status without running the API server.
"""
