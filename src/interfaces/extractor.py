"""Abstract base class for text extractors.

An extractor turns raw file bytes into :class:`~src.models.document.ExtractedText`.
Which extractor runs for a given upload is decided by the
:class:`~src.services.extraction_selector.ExtractionSelector` from the tier
table -- extractors themselves know nothing about tiers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import ExtractedText


# Concrete implementations:
#   PlainTextExtractor   -- "plain-text"  (text/plain, text/markdown)
#   DocxExtractor        -- "docx"        (python-docx)
#   PdfTextExtractor     -- "pdf-text"    (PyMuPDF text layer)
#   PdfVisionExtractor   -- "pdf-vision"  (PyMuPDF page renders + LLM vision)
# Located in: src/providers/extractors/
class IExtractor(ABC):
    """Contract for a single text-extraction strategy."""

    @abstractmethod
    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractedText:
        """Extract plain text from *data*.

        Returns
        -------
        ExtractedText
            Text, page offsets when known, and any weighted-token cost.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the bytes cannot be decoded by this strategy.
        src.utils.errors.ProviderUnavailableError
            If a remote dependency (vision model) is temporarily unavailable.
        """

    @abstractmethod
    def get_name(self) -> str:
        """Return the table key for this extractor, e.g. ``"pdf-text"``."""

    def consumes_tokens(self) -> bool:
        """Return ``True`` if extraction is charged against the daily token budget."""
        return False

    def estimate_weighted_tokens(self, data: bytes) -> int:
        """Estimate the weighted-token cost of extracting *data*."""
        return 0
