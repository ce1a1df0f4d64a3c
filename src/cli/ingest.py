# =============================================================================
# src/cli/ingest.py -- Document ingestion & query CLI
# =============================================================================
#
# Operator tool for the sales-document knowledge base.  Runs the same
# ingestion pipeline and retrieval engine as the API, against the same
# SQLite database and ChromaDB collection, without starting the server.
#
# Supported subcommands:
#
#   file    -- Ingest one or more local files for a user (synchronously)
#   ask     -- Ask a question against a user's documents
#   status  -- Show one document, or every document of a user
#   stale   -- List documents stuck in PROCESSING past the timeout
#
# Provider selection is shared with src/main.py (build_components), so the
# CLI always embeds with the same model as the deployed app.
#
# Usage examples:
#   python -m src.cli.ingest file --path notes/meeting_acme.pdf --user u-42 --deal D-7
#   python -m src.cli.ingest ask --user u-42 "What budget did Acme mention?"
#   python -m src.cli.ingest status --user u-42
#   python -m src.cli.ingest stale
# =============================================================================

"""Standalone CLI for ingesting and querying sales documents.

Usage::

    python -m src.cli.ingest file --path a.pdf --path b.txt --user u-42
    python -m src.cli.ingest ask --user u-42 --top-k 3 "Who signed the contract?"
    python -m src.cli.ingest status --user u-42 --id 7
    python -m src.cli.ingest stale
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.document import Document
from src.utils.concurrency import throttled_gather
from src.utils.errors import SalesBrainError


def _build(app_settings: Settings) -> dict[str, Any]:
    # Deferred: importing src.main configures logging and reads config.
    from src.main import build_components

    return build_components(app_settings)


def _print_document(document: Document) -> None:
    print(
        f"  [{document.id}] {document.original_file_name:<40} "
        f"{document.processing_status.value:<11} "
        f"type={document.document_type.value} "
        f"pages={document.total_pages if document.total_pages is not None else '-'} "
        f"chunks={document.total_chunks if document.total_chunks is not None else '-'}"
    )
    if document.error_message:
        print(f"      error: {document.error_message}")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _ingest_one(pipeline: Any, path: Path, user_id: str, deal_id: str | None) -> Document:
    file_bytes = path.read_bytes()
    content_type, _ = mimetypes.guess_type(path.name)
    document = await pipeline.create_document(
        file_name=path.name,
        content_type=content_type,
        file_bytes_size=len(file_bytes),
        user_id=user_id,
        deal_id=deal_id,
    )
    return await pipeline.process_document(document.id, file_bytes, user_id)


async def _handle_file(args: argparse.Namespace, components: dict[str, Any]) -> int:
    paths = [Path(p) for p in args.path]
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for p in missing:
            print(f"Error: file not found: {p}", file=sys.stderr)
        return 1

    app_settings: Settings = components["settings"]
    pipeline = components["ingestion_pipeline"]
    await components["document_repository"].initialize()

    semaphore = asyncio.Semaphore(app_settings.max_concurrent_ingestions)
    results = await throttled_gather(
        [_ingest_one(pipeline, p, args.user, args.deal) for p in paths],
        semaphore,
    )

    exit_code = 0
    print("Ingestion results")
    print("=" * 40)
    for path, result in zip(paths, results, strict=True):
        if isinstance(result, BaseException):
            print(f"  {path.name}: ERROR {result}")
            exit_code = 1
            continue
        _print_document(result)
        if result.error_message:
            exit_code = 1
    return exit_code


async def _handle_ask(args: argparse.Namespace, components: dict[str, Any]) -> int:
    engine = components["retrieval_engine"]
    try:
        result = await engine.query(args.question, args.user, top_k=args.top_k, deal_id=args.deal)
    except SalesBrainError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(result.answer)
    print()
    print(f"Confidence: {result.confidence.value}")
    if result.evidence:
        print("Evidence:")
        for i, item in enumerate(result.evidence, start=1):
            print(f"  {i}. {item.source} (page {item.page}, score {item.relevance_score:.2f})")
            print(f"     {item.excerpt}")
    return 0


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    pipeline = components["ingestion_pipeline"]
    await components["document_repository"].initialize()

    if args.id is not None:
        try:
            document = await pipeline.get_document(args.id, args.user)
        except SalesBrainError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        _print_document(document)
        return 0

    documents = await pipeline.list_documents(args.user)
    print(f"Documents for {args.user}: {len(documents)}")
    for document in documents:
        _print_document(document)
    return 0


async def _handle_stale(components: dict[str, Any]) -> int:
    await components["document_repository"].initialize()
    stale = await components["ingestion_pipeline"].find_stale_documents()
    print(f"Stale documents: {len(stale)}")
    for document in stale:
        print(f"  user={document.user_id} updated_at={document.updated_at.isoformat()}")
        _print_document(document)
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Ingest and query sales documents.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- file --
    file_parser = subparsers.add_parser("file", help="Ingest local files")
    file_parser.add_argument(
        "--path", required=True, action="append", help="File to ingest (repeatable)"
    )
    file_parser.add_argument("--user", required=True, help="Owning user id")
    file_parser.add_argument("--deal", default=None, help="Optional deal id")

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a question")
    ask_parser.add_argument("--user", required=True, help="Requesting user id")
    ask_parser.add_argument("--top-k", type=int, default=None, dest="top_k", help="Passages to retrieve")
    ask_parser.add_argument("--deal", default=None, help="Restrict to one deal")
    ask_parser.add_argument("question", help="Question text")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show document status")
    status_parser.add_argument("--user", required=True, help="Owning user id")
    status_parser.add_argument("--id", type=int, default=None, help="Document id")

    # -- stale --
    subparsers.add_parser("stale", help="List documents stuck in PROCESSING")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse the subcommand, build the components, and dispatch."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "ask" and args.top_k is not None and args.top_k < 1:
        parser.error("--top-k must be >= 1")

    components = _build(Settings())

    if args.command == "file":
        exit_code = asyncio.run(_handle_file(args, components))
    elif args.command == "ask":
        exit_code = asyncio.run(_handle_ask(args, components))
    elif args.command == "status":
        exit_code = asyncio.run(_handle_status(args, components))
    elif args.command == "stale":
        exit_code = asyncio.run(_handle_stale(components))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
