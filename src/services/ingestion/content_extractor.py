"""Turn uploaded file bytes into plain text.

PDFs are read with PyMuPDF (``fitz``) page by page; everything else is
decoded as UTF-8.  The extractor is the only place that knows about file
formats: downstream stages see an :class:`~src.models.rag.ExtractedContent`
with ``text`` and an optional ``page_count``.
"""

from __future__ import annotations

from pathlib import PurePath

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.models.rag import ExtractedContent
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PDF_CONTENT_TYPE = "application/pdf"
_PDF_SUFFIX = ".pdf"

# Plain-text uploads accepted besides any ``text/*`` MIME type.
_TEXT_SUFFIXES = frozenset({".txt", ".md", ".csv", ".log"})


class ContentExtractor:
    """Extracts plain text (and a page count for PDFs) from raw upload bytes."""

    @staticmethod
    def is_paginated(content_type: str | None, filename: str | None) -> bool:
        """Return ``True`` when the upload should be parsed as a PDF."""
        if (content_type or "").split(";")[0].strip().lower() == _PDF_CONTENT_TYPE:
            return True
        return bool(filename) and PurePath(filename).suffix.lower() == _PDF_SUFFIX

    @classmethod
    def supports(cls, content_type: str | None, filename: str | None) -> bool:
        """Return ``True`` if the format is recognised by :meth:`extract`."""
        if cls.is_paginated(content_type, filename):
            return True
        if (content_type or "").lower().startswith("text/"):
            return True
        return bool(filename) and PurePath(filename).suffix.lower() in _TEXT_SUFFIXES

    def extract(
        self,
        file_bytes: bytes,
        filename: str,
        content_type: str | None = None,
    ) -> ExtractedContent:
        """Extract trimmed plain text from *file_bytes*.

        Parameters
        ----------
        file_bytes:
            The raw upload.  Zero bytes is valid and yields empty text.
        filename:
            Original filename; its extension is consulted when the declared
            content type is missing or generic.
        content_type:
            Declared MIME type.

        Returns
        -------
        ExtractedContent
            ``page_count`` is the PDF page count, or ``None`` for text.

        Raises
        ------
        ExtractionError
            If a PDF cannot be opened or parsed.  Text is decoded as UTF-8
            with undecodable bytes replaced, so plain text never fails.
        """
        if not file_bytes:
            return ExtractedContent(text="", page_count=None)

        if self.is_paginated(content_type, filename):
            return self._extract_pdf(file_bytes, filename)

        text = file_bytes.decode("utf-8", errors="replace")
        if "�" in text:
            logger.warning(
                "text_decode_replaced",
                filename=filename,
                replaced=text.count("�"),
            )

        content = ExtractedContent(text=text.strip(), page_count=None)
        logger.info("text_extracted", filename=filename, chars=len(content.text))
        return content

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(file_bytes: bytes, filename: str) -> ExtractedContent:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", filename=filename, error=str(exc))
            raise ExtractionError(filename=filename, cause=exc) from exc

        try:
            pages = [doc[page_num].get_text("text") for page_num in range(doc.page_count)]
            page_count = doc.page_count
        except Exception as exc:
            logger.error("pdf_parse_failed", filename=filename, error=str(exc))
            raise ExtractionError(filename=filename, cause=exc) from exc
        finally:
            doc.close()

        text = "\n".join(page.strip() for page in pages).strip()
        if not text:
            logger.warning("pdf_no_text_extracted", filename=filename, pages=page_count)
        logger.info("pdf_extracted", filename=filename, pages=page_count, chars=len(text))
        return ExtractedContent(text=text, page_count=page_count)
