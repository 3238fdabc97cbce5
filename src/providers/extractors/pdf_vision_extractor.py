"""Vision-based PDF extractor.

Renders every page with PyMuPDF and asks a vision-capable LLM to transcribe
it, describing figures, charts, and diagrams inline as
``[IMAGE: description]`` so that visual content becomes searchable text.

Each page is one completion call retried independently.  Reported tokens
are weighted by the vision model's cost weight and returned on the
ExtractedText so the caller can record them against the account's budget.
When a page fails, the cost of the pages already transcribed travels on
the ExtractionError instead.
"""

from __future__ import annotations

import asyncio
import re
from typing import Callable

import fitz  # PyMuPDF
import structlog

from src.interfaces.extractor import IExtractor
from src.interfaces.llm_provider import ILLMProvider
from src.models.document import ExtractedText
from src.providers.extractors.text_extractors import join_pages
from src.utils.errors import ExtractionError, LLMError, ProviderUnavailableError, RateLimitError
from src.utils.retry import call_with_retry
from src.utils.tokens import weighted_tokens

logger = structlog.get_logger(logger_name=__name__)

_RENDER_DPI = 144
# Rough per-page cost of a rendered page plus its transcription.
_ESTIMATED_TOKENS_PER_PAGE = 1800

_EXTRACTION_PROMPT = """\
You are a document text extractor. Extract ALL text content from this page and describe visual elements.

Instructions:
1. Extract all readable text exactly as it appears, preserving structure
2. For images, charts, diagrams, figures: use [IMAGE: description] format
3. For tables: preserve structure using plain text
4. For math formulas: represent them in readable text format
5. Maintain logical reading order
6. Ignore page footers, headers, watermarks, and decorative logos

Output the extracted content directly without preamble."""

_IMAGE_TAG = re.compile(r"\[IMAGE:", re.IGNORECASE)


class PdfVisionExtractor(IExtractor):
    """Transcribes rendered PDF pages with an LLM vision model."""

    def __init__(
        self,
        llm: ILLMProvider,
        weight_for: Callable[[str | None], float],
        *,
        attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float = 60.0,
    ) -> None:
        self._llm = llm
        self._weight_for = weight_for
        self._attempts = attempts
        self._base_delay = base_delay
        self._timeout = timeout

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractedText:
        if not self._llm.supports_vision():
            raise ExtractionError(
                message="Configured completion provider has no vision support",
                provider_name=self.get_name(),
            )

        try:
            images = await asyncio.to_thread(self._render_pages, data)
        except Exception as exc:
            raise ExtractionError(
                message=f"Cannot render PDF {filename}: {exc}",
                provider_name=self.get_name(),
            ) from exc

        pages: list[str] = []
        raw_tokens = 0
        model: str | None = None
        for page_num, image in enumerate(images, start=1):
            try:
                result = await call_with_retry(
                    lambda image=image: self._llm.vision_extract(image, _EXTRACTION_PROMPT),
                    attempts=self._attempts,
                    base_delay=self._base_delay,
                    timeout=self._timeout,
                    label="vision_extract",
                )
            except (LLMError, ProviderUnavailableError, RateLimitError) as exc:
                spent = weighted_tokens(raw_tokens, self._weight_for(model))
                logger.warning(
                    "pdf_vision_page_failed",
                    filename=filename,
                    page=page_num,
                    weighted_tokens_spent=spent,
                )
                raise ExtractionError(
                    message=f"Vision extraction failed on page {page_num}: {exc.message}",
                    provider_name=self.get_name(),
                    weighted_tokens=spent,
                ) from exc
            pages.append(result.text.strip())
            raw_tokens += result.total_tokens
            model = result.model

        text, offsets = join_pages(pages)
        cost = weighted_tokens(raw_tokens, self._weight_for(model))
        logger.info(
            "pdf_vision_extracted",
            filename=filename,
            pages=len(pages),
            chars=len(text),
            raw_tokens=raw_tokens,
            weighted_tokens=cost,
        )
        return ExtractedText(
            text=text,
            extractor=self.get_name(),
            page_offsets=offsets,
            image_descriptions=len(_IMAGE_TAG.findall(text)),
            weighted_tokens=cost,
            model=model,
        )

    def get_name(self) -> str:
        return "pdf-vision"

    def consumes_tokens(self) -> bool:
        return True

    def estimate_weighted_tokens(self, data: bytes) -> int:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception:  # noqa: BLE001
            return _ESTIMATED_TOKENS_PER_PAGE
        try:
            page_count = len(doc)
        finally:
            doc.close()
        return weighted_tokens(
            page_count * _ESTIMATED_TOKENS_PER_PAGE,
            self._weight_for(self._llm.get_vision_model_name()),
        )

    @staticmethod
    def _render_pages(data: bytes) -> list[bytes]:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            return [page.get_pixmap(dpi=_RENDER_DPI).tobytes("png") for page in doc]
        finally:
            doc.close()
