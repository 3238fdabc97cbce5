"""Extraction Selector -- picks and runs the extractor for an upload.

The (tier, MIME type) -> (primary, fallback) routing lives in the tier
table.  The selector resolves a route once per document and runs an
explicit two-attempt plan:

    attempt 1: primary
    attempt 2: fallback (only if configured)

Token-consuming extractors (vision) are additionally gated by the Quota
Guard: when the account cannot afford the estimated cost the primary is
skipped in favour of the fallback rather than failing the upload, and
their weighted cost is recorded as soon as the call returns, including
the partial cost carried by a failed attempt.  An attempt
that yields no text counts as a failure.  The selector never touches
document status; that is the orchestrator's job.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from src.interfaces.extractor import IExtractor
from src.models.document import Document, ExtractedText
from src.models.usage import AccountTier, ExtractorRoute, TierTable
from src.services.quota_guard import QuotaGuard
from src.utils.errors import ConfigurationError, ExtractionError, QuotaExceededError, StudyRAGError

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class ExtractionAttempt:
    extractor: IExtractor
    role: str  # "primary" | "fallback"


class ExtractionSelector:
    """Resolves the tier table route and runs primary-then-fallback extraction."""

    def __init__(
        self,
        tier_table: TierTable,
        extractors: dict[str, IExtractor],
        quota_guard: QuotaGuard | None = None,
    ) -> None:
        self._tier_table = tier_table
        self._extractors = extractors
        self._quota_guard = quota_guard
        self._validate_table()

    def plan(self, tier: AccountTier, mime_type: str) -> list[ExtractionAttempt]:
        """Return the ordered attempts for (tier, MIME type).

        Raises
        ------
        ExtractionError
            If the MIME type is not supported for the tier.
        """
        route = self._tier_table.route_for(tier, mime_type)
        if route is None:
            raise ExtractionError(
                message=f"Unsupported file type for {tier.value} accounts: {mime_type}",
            )
        attempts = [ExtractionAttempt(self._extractors[route.primary], "primary")]
        if route.fallback:
            attempts.append(ExtractionAttempt(self._extractors[route.fallback], "fallback"))
        return attempts

    async def select_and_extract(
        self,
        document: Document,
        data: bytes,
        tier: AccountTier,
        account_id: str | None = None,
    ) -> ExtractedText:
        """Extract text from *data* using the tier's route for the document's MIME type.

        Raises
        ------
        ExtractionError
            When every planned attempt failed or was skipped.
        """
        attempts = self.plan(tier, document.mime_type)
        errors: list[str] = []

        for attempt in attempts:
            extractor = attempt.extractor
            name = extractor.get_name()

            if extractor.consumes_tokens() and account_id and self._quota_guard is not None:
                try:
                    await self._quota_guard.check_and_reserve(
                        account_id, extractor.estimate_weighted_tokens(data)
                    )
                except QuotaExceededError as exc:
                    logger.warning(
                        "extractor_skipped_quota",
                        document_id=document.id,
                        extractor=name,
                        role=attempt.role,
                    )
                    errors.append(f"{name}: {exc.message}")
                    continue

            try:
                extracted = await extractor.extract(data, document.filename, document.mime_type)
            except StudyRAGError as exc:
                logger.warning(
                    "extractor_failed",
                    document_id=document.id,
                    extractor=name,
                    role=attempt.role,
                    error=str(exc),
                )
                errors.append(f"{name}: {exc.message}")
                if isinstance(exc, ExtractionError):
                    await self._charge(account_id, exc.weighted_tokens)
                continue

            await self._charge(account_id, extracted.weighted_tokens)

            if not extracted.text.strip():
                logger.warning(
                    "extractor_empty",
                    document_id=document.id,
                    extractor=name,
                    role=attempt.role,
                )
                errors.append(f"{name}: no text found")
                continue

            logger.info(
                "extraction_complete",
                document_id=document.id,
                extractor=name,
                role=attempt.role,
                chars=len(extracted.text),
                weighted_tokens=extracted.weighted_tokens,
            )
            return extracted

        raise ExtractionError(message="; ".join(errors) or "No extractor available")

    async def _charge(self, account_id: str | None, weighted: int) -> None:
        if weighted and account_id and self._quota_guard is not None:
            await self._quota_guard.record_weighted(account_id, weighted)

    def _validate_table(self) -> None:
        for tier, routes in self._tier_table.extractors.items():
            for mime_type, route in routes.items():
                for name in self._route_names(route):
                    if name not in self._extractors:
                        raise ConfigurationError(
                            message=f"Tier {tier.value} routes {mime_type} to unknown extractor '{name}'",
                        )

    @staticmethod
    def _route_names(route: ExtractorRoute) -> list[str]:
        return [route.primary] + ([route.fallback] if route.fallback else [])

