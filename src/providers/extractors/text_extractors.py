"""Token-free extractors: plain text, Word documents, and PDF text layers.

None of these call a remote service, so they never count toward the daily
weighted-token budget.  Parsing libraries are synchronous and run in a
worker thread to keep the event loop free during large uploads.
"""

from __future__ import annotations

import asyncio
from io import BytesIO

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.extractor import IExtractor
from src.models.document import ExtractedText
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SEPARATOR = "\n\n"


def join_pages(pages: list[str]) -> tuple[str, list[int]]:
    """Join page texts with blank lines and return the text plus each page's start offset."""
    offsets: list[int] = []
    parts: list[str] = []
    cursor = 0
    for idx, page_text in enumerate(pages):
        if idx:
            parts.append(_PAGE_SEPARATOR)
            cursor += len(_PAGE_SEPARATOR)
        offsets.append(cursor)
        parts.append(page_text)
        cursor += len(page_text)
    return "".join(parts), offsets


class PlainTextExtractor(IExtractor):
    """UTF-8 text and markdown files (BOM tolerated, invalid bytes replaced)."""

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractedText:
        text = data.decode("utf-8-sig", errors="replace")
        return ExtractedText(text=text, extractor=self.get_name())

    def get_name(self) -> str:
        return "plain-text"


class DocxExtractor(IExtractor):
    """Word documents via python-docx: paragraph text plus table cells."""

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractedText:
        try:
            text = await asyncio.to_thread(self._parse, data)
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot read Word document {filename}: {exc}",
                provider_name=self.get_name(),
            ) from exc
        logger.info("docx_extracted", filename=filename, chars=len(text))
        return ExtractedText(text=text, extractor=self.get_name())

    def get_name(self) -> str:
        return "docx"

    @staticmethod
    def _parse(data: bytes) -> str:
        document = docx.Document(BytesIO(data))
        blocks = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    blocks.append(" | ".join(cells))
        return "\n\n".join(blocks)


class PdfTextExtractor(IExtractor):
    """PDF text layer via PyMuPDF, page by page.

    Scanned PDFs without a text layer come back empty; the Ingestion
    Orchestrator turns that into a FAILED document rather than an empty
    READY one.
    """

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractedText:
        try:
            pages = await asyncio.to_thread(self._extract_pages, data)
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot read PDF {filename}: {exc}",
                provider_name=self.get_name(),
            ) from exc

        text, offsets = join_pages(pages)
        logger.info("pdf_text_extracted", filename=filename, pages=len(pages), chars=len(text))
        return ExtractedText(text=text, extractor=self.get_name(), page_offsets=offsets)

    def get_name(self) -> str:
        return "pdf-text"

    @staticmethod
    def _extract_pages(data: bytes) -> list[str]:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            return [doc[page_num].get_text("text").strip() for page_num in range(len(doc))]
        finally:
            doc.close()
