"""Text chunking with overlapping windows and boundary preference.

Splits extracted text into :class:`~src.models.rag.Passage` objects sized
for embedding (~800 characters with ~100 characters of overlap by default).

Every passage is an exact slice ``text[start:end]`` of the input, so:

* passages can be traced back to character offsets (and therefore pages);
* dropping each passage's overlap with its predecessor and concatenating
  the rest reproduces the input (see :func:`reconstruct`);
* no passage is whitespace only: a whitespace run that reaches past the
  overlap is skipped before the next window opens, and leading whitespace
  of the input is skipped the same way;
* the same input always produces the same boundaries.

Boundary preference inside each window, best first:

1. **Paragraph break** (blank line)
2. **Sentence end** -- ``.``, ``!`` or ``?`` followed by whitespace, ignoring
   abbreviations such as "Dr." or "e.g."
3. **Whitespace** between words
4. Hard cut at the window edge (only for unbroken runs longer than a window)

A break is only accepted in the back half of the window so passages never
collapse to fragments.  The next passage starts ``overlap`` characters
before the previous end, moved forward to the start of a word, so no
passage begins mid-word.
"""

from __future__ import annotations

import re

import structlog

from src.models.rag import Passage

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT count as a sentence end.
_ABBREVIATIONS = frozenset(
    {
        "dr",
        "mr",
        "mrs",
        "ms",
        "prof",
        "jr",
        "sr",
        "st",
        "vs",
        "etc",
        "approx",
        "fig",
        "eq",
        "no",
        "vol",
        "e.g",
        "i.e",
        "cf",
    }
)

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_END = re.compile(r"[.!?][\"')\]]*\s+")
_WHITESPACE = re.compile(r"\s+")
_WORD_BEFORE = re.compile(r"([A-Za-z.]+)$")


class TextChunker:
    """Splits text into overlapping passages preferring natural boundaries.

    Parameters
    ----------
    chunk_size:
        Maximum passage length in characters (default 800).
    overlap:
        Target overlap between consecutive passages in characters
        (default 100).  Must be smaller than *chunk_size*.
    """

    def __init__(self, chunk_size: int = 800, overlap: int = 100) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._min_break = max(1, chunk_size // 2)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[Passage]:
        """Split *text* into ordered, overlapping passages.

        Returns an empty list for empty or whitespace-only input.
        """
        if not text or not text.strip():
            return []

        n = len(text)
        passages: list[Passage] = []
        start = _skip_whitespace(text, 0)

        while True:
            if n - start <= self._chunk_size:
                end = n
            else:
                end = self._find_break(text, start, start + self._chunk_size)

            passages.append(
                Passage(ordinal=len(passages), text=text[start:end], start=start, end=end)
            )
            if end >= n:
                break
            start = _skip_whitespace(text, self._next_start(text, start, end))
            if start >= n:
                break

        logger.debug(
            "chunking_complete",
            num_passages=len(passages),
            chars=n,
            avg_chars=n // len(passages),
        )
        return passages

    # ------------------------------------------------------------------
    # Boundary selection
    # ------------------------------------------------------------------

    def _find_break(self, text: str, start: int, limit: int) -> int:
        """Return the best end offset in ``(start + min_break, limit]``."""
        lo = start + self._min_break

        end = self._last_match_end(_PARAGRAPH_BREAK, text, lo, limit)
        if end is not None:
            return end

        end = self._last_sentence_end(text, lo, limit)
        if end is not None:
            return end

        end = self._last_match_end(_WHITESPACE, text, lo, limit)
        if end is not None:
            return end

        return limit

    @staticmethod
    def _last_match_end(pattern: re.Pattern[str], text: str, lo: int, limit: int) -> int | None:
        last: int | None = None
        for match in pattern.finditer(text, lo, limit):
            last = match.end()
        return last

    def _last_sentence_end(self, text: str, lo: int, limit: int) -> int | None:
        last: int | None = None
        for match in _SENTENCE_END.finditer(text, lo, limit):
            if not self._is_abbreviation(text, match.start()):
                last = match.end()
        return last

    @staticmethod
    def _is_abbreviation(text: str, period_pos: int) -> bool:
        if text[period_pos] != ".":
            return False
        word = _WORD_BEFORE.search(text, max(0, period_pos - 12), period_pos)
        if word is None:
            return False
        token = word.group(1).lower().lstrip(".")
        return token in _ABBREVIATIONS or len(token) == 1

    def _next_start(self, text: str, start: int, end: int) -> int:
        """Step back by *overlap*, then forward to the next word start (never past *end*)."""
        pos = max(end - self._overlap, start + 1)
        while pos < end and not text[pos - 1].isspace():
            pos += 1
        while pos < end and text[pos].isspace():
            pos += 1
        return pos


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def reconstruct(passages: list[Passage]) -> str:
    """Rebuild the chunked text by dropping each passage's overlap with its predecessor.

    Whitespace runs that fell between passages come back as the same number
    of spaces, so offsets still line up with the source text.
    """
    if not passages:
        return ""
    parts = [" " * passages[0].start, passages[0].text]
    for prev, current in zip(passages, passages[1:]):
        if current.start > prev.end:
            parts.append(" " * (current.start - prev.end))
        parts.append(current.text[max(prev.end - current.start, 0) :])
    return "".join(parts)
