"""Unit tests for the ExtractionSelector -- tier routing, fallback and quota gating."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.extractor import IExtractor
from src.models.document import Document, ExtractedText
from src.models.usage import AccountTier, TierTable
from src.services.extraction_selector import ExtractionSelector
from src.services.quota_guard import QuotaGuard
from src.utils.errors import (
    ConfigurationError,
    ExtractionError,
    ProviderUnavailableError,
    QuotaExceededError,
)

_PDF = "application/pdf"


# ── Helpers ──────────────────────────────────────────────


def _extractor(
    name: str,
    text: str = "Extracted study material.",
    *,
    consumes_tokens: bool = False,
    error: Exception | None = None,
    weighted: int = 0,
) -> MagicMock:
    mock = MagicMock(spec=IExtractor)
    mock.get_name.return_value = name
    mock.consumes_tokens.return_value = consumes_tokens
    mock.estimate_weighted_tokens.return_value = 500
    if error is not None:
        mock.extract = AsyncMock(side_effect=error)
    else:
        mock.extract = AsyncMock(
            return_value=ExtractedText(text=text, extractor=name, weighted_tokens=weighted)
        )
    return mock


def _document(mime_type: str = _PDF) -> Document:
    return Document(
        id="doc-1",
        classroom_id="room-1",
        filename="lecture.pdf",
        mime_type=mime_type,
        size_bytes=10,
        storage_key="room-1/doc-1-lecture.pdf",
    )


def _extractors(**overrides: MagicMock) -> dict[str, MagicMock]:
    extractors = {
        "plain-text": _extractor("plain-text"),
        "docx": _extractor("docx"),
        "pdf-text": _extractor("pdf-text", "Text layer content."),
        "pdf-vision": _extractor("pdf-vision", "Vision transcript.", consumes_tokens=True, weighted=120),
    }
    for key, value in overrides.items():
        extractors[key.replace("_", "-")] = value
    return extractors


@pytest.fixture()
def mock_quota() -> MagicMock:
    quota = MagicMock(spec=QuotaGuard)
    quota.check_and_reserve = AsyncMock()
    quota.record_weighted = AsyncMock(return_value=0)
    return quota


# ── Planning ─────────────────────────────────────────────


class TestPlan:
    def test_free_pdf_uses_text_layer_only(self, tier_table: TierTable) -> None:
        selector = ExtractionSelector(tier_table, _extractors())
        attempts = selector.plan(AccountTier.FREE, _PDF)

        assert [(a.extractor.get_name(), a.role) for a in attempts] == [("pdf-text", "primary")]

    def test_premium_pdf_tries_vision_then_text(self, tier_table: TierTable) -> None:
        selector = ExtractionSelector(tier_table, _extractors())
        attempts = selector.plan(AccountTier.PREMIUM, _PDF)

        assert [(a.extractor.get_name(), a.role) for a in attempts] == [
            ("pdf-vision", "primary"),
            ("pdf-text", "fallback"),
        ]

    def test_mime_parameters_are_ignored(self, tier_table: TierTable) -> None:
        selector = ExtractionSelector(tier_table, _extractors())
        attempts = selector.plan(AccountTier.FREE, "text/plain; charset=utf-8")
        assert attempts[0].extractor.get_name() == "plain-text"

    def test_unsupported_type_raises(self, tier_table: TierTable) -> None:
        selector = ExtractionSelector(tier_table, _extractors())
        with pytest.raises(ExtractionError, match="Unsupported file type"):
            selector.plan(AccountTier.FREE, "image/png")

    def test_unknown_extractor_in_table_is_config_error(self, tier_table: TierTable) -> None:
        extractors = _extractors()
        del extractors["pdf-vision"]
        with pytest.raises(ConfigurationError, match="pdf-vision"):
            ExtractionSelector(tier_table, extractors)


# ── Extraction ───────────────────────────────────────────


class TestSelectAndExtract:
    @pytest.mark.asyncio()
    async def test_primary_success(self, tier_table: TierTable, mock_quota: MagicMock) -> None:
        extractors = _extractors()
        selector = ExtractionSelector(tier_table, extractors, mock_quota)

        result = await selector.select_and_extract(
            _document(), b"%PDF", AccountTier.PREMIUM, account_id="acct-1"
        )

        assert result.extractor == "pdf-vision"
        extractors["pdf-text"].extract.assert_not_awaited()
        mock_quota.record_weighted.assert_awaited_once_with("acct-1", 120)

    @pytest.mark.asyncio()
    async def test_falls_back_when_primary_fails(self, tier_table: TierTable) -> None:
        failing = _extractor(
            "pdf-vision",
            consumes_tokens=True,
            error=ProviderUnavailableError(message="vision down"),
        )
        selector = ExtractionSelector(tier_table, _extractors(pdf_vision=failing))

        result = await selector.select_and_extract(_document(), b"%PDF", AccountTier.PREMIUM)

        assert result.extractor == "pdf-text"
        assert result.text == "Text layer content."

    @pytest.mark.asyncio()
    async def test_empty_primary_counts_as_failure(self, tier_table: TierTable) -> None:
        blank = _extractor("pdf-vision", "   \n", consumes_tokens=True)
        selector = ExtractionSelector(tier_table, _extractors(pdf_vision=blank))

        result = await selector.select_and_extract(_document(), b"%PDF", AccountTier.PREMIUM)

        assert result.extractor == "pdf-text"

    @pytest.mark.asyncio()
    async def test_vision_skipped_when_over_quota(
        self, tier_table: TierTable, mock_quota: MagicMock
    ) -> None:
        mock_quota.check_and_reserve.side_effect = QuotaExceededError(message="cap reached")
        extractors = _extractors()
        selector = ExtractionSelector(tier_table, extractors, mock_quota)

        result = await selector.select_and_extract(
            _document(), b"%PDF", AccountTier.PREMIUM, account_id="acct-1"
        )

        assert result.extractor == "pdf-text"
        extractors["pdf-vision"].extract.assert_not_awaited()
        mock_quota.record_weighted.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_all_attempts_fail(self, tier_table: TierTable) -> None:
        selector = ExtractionSelector(
            tier_table,
            _extractors(
                pdf_vision=_extractor(
                    "pdf-vision", consumes_tokens=True, error=ExtractionError(message="bad render")
                ),
                pdf_text=_extractor("pdf-text", error=ExtractionError(message="no text layer")),
            ),
        )

        with pytest.raises(ExtractionError) as exc_info:
            await selector.select_and_extract(_document(), b"%PDF", AccountTier.PREMIUM)

        assert "bad render" in exc_info.value.message
        assert "no text layer" in exc_info.value.message

    @pytest.mark.asyncio()
    async def test_single_route_failure_has_no_fallback(self, tier_table: TierTable) -> None:
        failing = _extractor("pdf-text", error=ExtractionError(message="encrypted"))
        selector = ExtractionSelector(tier_table, _extractors(pdf_text=failing))

        with pytest.raises(ExtractionError, match="encrypted"):
            await selector.select_and_extract(_document(), b"%PDF", AccountTier.FREE)
        failing.extract.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_partial_cost_of_failed_primary_is_charged(
        self, tier_table: TierTable, mock_quota: MagicMock
    ) -> None:
        failing = _extractor(
            "pdf-vision",
            consumes_tokens=True,
            error=ExtractionError(message="page 2 refused", weighted_tokens=300),
        )
        selector = ExtractionSelector(tier_table, _extractors(pdf_vision=failing), mock_quota)

        result = await selector.select_and_extract(
            _document(), b"%PDF", AccountTier.PREMIUM, account_id="acct-1"
        )

        assert result.extractor == "pdf-text"
        mock_quota.record_weighted.assert_awaited_once_with("acct-1", 300)
