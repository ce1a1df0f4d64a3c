"""Boundary-aware text segmentation with overlapping character windows.

Splits extracted document text into :class:`~src.models.rag.Segment`
objects sized for embedding (800 characters with 100 characters of overlap
by default).

The algorithm is deliberately simple and fully deterministic:

1. **Clean** -- normalise line endings, collapse 3+ newlines to a blank
   line, collapse runs of spaces/tabs, trim.
2. **Window** -- walk the cleaned text in ``chunk_size`` windows.  A window
   that does not reach the end is shortened to the last sentence terminator
   (``.``, ``!``, ``?``, newline) found in its second half, else to the last
   whitespace there, else it is cut at the raw boundary.
3. **Overlap** -- the next window starts ``overlap`` characters before the
   previous cut, but always at least one character further on, so the walk
   terminates even when ``overlap >= chunk_size``.

Offsets refer to the cleaned text (the raw window, before trimming), which
is what gets persisted on each chunk row.
"""

from __future__ import annotations

import math
import re

import structlog

from src.config.settings import RagConfig
from src.models.rag import Segment
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

_CRLF_RE = re.compile(r"\r\n")
_CR_RE = re.compile(r"\r")
_MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
_HORIZONTAL_WS_RE = re.compile(r"[ \t]+")

_SENTENCE_TERMINATORS = frozenset(".!?\n")

# Rough heuristic for English text: about four characters per token.
_CHARS_PER_TOKEN = 4


def clean_text(text: str) -> str:
    """Normalise whitespace the same way for every document."""
    text = _CRLF_RE.sub("\n", text)
    text = _CR_RE.sub("\n", text)
    text = _MULTI_NEWLINE_RE.sub("\n\n", text)
    text = _HORIZONTAL_WS_RE.sub(" ", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Return ``ceil(len(text) / 4)``."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class TextSegmenter:
    """Splits text into overlapping, boundary-aware segments.

    Stateless between calls: the same input always yields the same output.

    Parameters
    ----------
    config:
        Supplies the default ``chunk_size_chars`` and ``overlap_chars``.
        Defaults to :class:`RagConfig` defaults (800 / 100).
    """

    def __init__(self, config: RagConfig | None = None) -> None:
        self._config = config or RagConfig()

    @property
    def chunk_size(self) -> int:
        return self._config.chunk_size_chars

    @property
    def overlap(self) -> int:
        return self._config.overlap_chars

    def segment(
        self,
        text: str | None,
        chunk_size_chars: int | None = None,
        overlap_chars: int | None = None,
        *,
        label: str | None = None,
    ) -> list[Segment]:
        """Split *text* into ordered, overlapping segments.

        Parameters
        ----------
        text:
            Raw extracted text.  ``None`` and blank input yield ``[]``.
        chunk_size_chars:
            Window size override; defaults to the configured size.
        overlap_chars:
            Overlap override; defaults to the configured overlap.  Values
            at or above the window size are tolerated (progress is still
            guaranteed).
        label:
            Optional name used only in the log event.

        Returns
        -------
        list[Segment]
            Segments with indices ``0..n-1``, strictly increasing start
            offsets and non-empty content.

        Raises
        ------
        ConfigurationError
            If ``chunk_size_chars <= 0`` or ``overlap_chars < 0``.
        """
        size = self.chunk_size if chunk_size_chars is None else chunk_size_chars
        overlap = self.overlap if overlap_chars is None else overlap_chars
        if size <= 0:
            raise ConfigurationError(message=f"chunk_size_chars must be positive, got {size}")
        if overlap < 0:
            raise ConfigurationError(message=f"overlap_chars must not be negative, got {overlap}")

        if text is None or not text.strip():
            return []

        cleaned = clean_text(text)
        length = len(cleaned)
        segments: list[Segment] = []

        start = 0
        while start < length:
            end = min(start + size, length)
            if end < length:
                end = self._find_boundary(cleaned, start, end, size)

            content = cleaned[start:end].strip()
            if content:
                segments.append(
                    Segment(
                        content=content,
                        index=len(segments),
                        start_offset=start,
                        end_offset=end,
                        token_estimate=estimate_tokens(content),
                    )
                )

            if end >= length:
                break
            start = max(end - overlap, start + 1)

        logger.debug(
            "text_segmented",
            label=label,
            cleaned_chars=length,
            segments=len(segments),
            chunk_size=size,
            overlap=overlap,
        )
        return segments

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _find_boundary(text: str, start: int, end: int, size: int) -> int:
        """Return the cut position for a window that ends before the text does.

        Only the second half of the window (``start + size // 2``, exclusive)
        is searched, so a cut never shrinks a window below half its size.
        """
        search_start = start + size // 2
        for i in range(end, search_start, -1):
            if text[i - 1] in _SENTENCE_TERMINATORS:
                return i
        for i in range(end, search_start, -1):
            if text[i - 1].isspace():
                return i
        return end
