"""Unit tests for the ingestion CLI: argument parsing and handlers."""

from __future__ import annotations

import argparse

import pytest

from src.cli.ingest import _build_parser, _handle_ask, _handle_file, _handle_stale, _handle_status, main
from src.config.settings import Settings


@pytest.fixture()
def components(pipeline, repository, retrieval_engine) -> dict:
    return {
        "settings": Settings(_env_file=None, max_concurrent_ingestions=2),
        "ingestion_pipeline": pipeline,
        "document_repository": repository,
        "retrieval_engine": retrieval_engine,
    }


class TestParser:
    def test_file_accepts_repeated_paths(self) -> None:
        args = _build_parser().parse_args(["file", "--path", "a.pdf", "--path", "b.txt", "--user", "u-1"])
        assert args.command == "file"
        assert args.path == ["a.pdf", "b.txt"]
        assert args.deal is None

    def test_ask(self) -> None:
        args = _build_parser().parse_args(["ask", "--user", "u-1", "--top-k", "3", "--deal", "D-7", "Budget?"])
        assert (args.user, args.top_k, args.deal, args.question) == ("u-1", 3, "D-7", "Budget?")

    def test_status_id_is_int(self) -> None:
        args = _build_parser().parse_args(["status", "--user", "u-1", "--id", "7"])
        assert args.id == 7

    def test_file_requires_user(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["file", "--path", "a.pdf"])

    def test_no_command_exits_nonzero(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_rejects_non_positive_top_k(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["ask", "--user", "u-1", "--top-k", "0", "anything"])
        assert exc_info.value.code == 2


class TestHandlers:
    @pytest.mark.asyncio
    async def test_file_ingests_and_reports(self, components, tmp_path, capsys) -> None:
        notes = tmp_path / "meeting_acme.txt"
        notes.write_text("Acme confirmed budget for 200 seats. Decision expected in May.")

        args = argparse.Namespace(path=[str(notes)], user="u-1", deal="D-7")
        exit_code = await _handle_file(args, components)

        assert exit_code == 0
        out = capsys.readouterr().out
        assert "meeting_acme.txt" in out
        assert "COMPLETED" in out
        assert "type=MEETING_MINUTES" in out

    @pytest.mark.asyncio
    async def test_file_missing_path(self, components, tmp_path, capsys) -> None:
        args = argparse.Namespace(path=[str(tmp_path / "nope.pdf")], user="u-1", deal=None)
        assert await _handle_file(args, components) == 1
        assert "file not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_file_failed_extraction_sets_exit_code(self, components, tmp_path, capsys) -> None:
        broken = tmp_path / "broken.pdf"
        broken.write_bytes(b"not really a pdf")

        args = argparse.Namespace(path=[str(broken)], user="u-1", deal=None)
        assert await _handle_file(args, components) == 1
        assert "FAILED" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_ask_without_documents(self, components, capsys) -> None:
        args = argparse.Namespace(question="Any news?", user="u-1", top_k=None, deal=None)
        assert await _handle_ask(args, components) == 0
        out = capsys.readouterr().out
        assert "couldn't find any relevant information" in out
        assert "Confidence: Low" in out

    @pytest.mark.asyncio
    async def test_status_lists_and_shows(self, components, pipeline, capsys) -> None:
        doc = await pipeline.create_document("quote.txt", "text/plain", 3, "u-1")

        assert await _handle_status(argparse.Namespace(user="u-1", id=None), components) == 0
        assert "Documents for u-1: 1" in capsys.readouterr().out

        assert await _handle_status(argparse.Namespace(user="u-1", id=doc.id), components) == 0
        assert "PENDING" in capsys.readouterr().out

        assert await _handle_status(argparse.Namespace(user="u-2", id=doc.id), components) == 1

    @pytest.mark.asyncio
    async def test_stale(self, components, capsys) -> None:
        assert await _handle_stale(components) == 0
        assert "Stale documents: 0" in capsys.readouterr().out
