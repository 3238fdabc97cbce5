"""Text extractor implementations, keyed by the names used in the tier table.

    plain-text  -- PlainTextExtractor
    docx        -- DocxExtractor (python-docx)
    pdf-text    -- PdfTextExtractor (PyMuPDF text layer)
    pdf-vision  -- PdfVisionExtractor (PyMuPDF renders + LLM vision, costs tokens)
"""

from src.providers.extractors.pdf_vision_extractor import PdfVisionExtractor
from src.providers.extractors.text_extractors import (
    DocxExtractor,
    PdfTextExtractor,
    PlainTextExtractor,
)

__all__ = ["DocxExtractor", "PdfTextExtractor", "PdfVisionExtractor", "PlainTextExtractor"]
