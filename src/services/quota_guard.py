"""Quota Guard -- tier-limit checks before any token-consuming call.

The guard is consulted *before* embedding or completion work starts:

* :meth:`check_and_reserve` rejects a request whose estimated weighted
  tokens would push today's counter over the tier's daily cap.  The
  reservation is advisory; nothing is written.
* :meth:`record_usage` adds the real, cost-weighted token count once a call
  has completed.  Because the estimate can undershoot, the last accepted
  request of the day may leave the counter slightly above the cap; the
  overshoot is bounded by a single request's cost.

Days are keyed by UTC date, so the budget resets by key rather than by a
scheduled job.  Storage and classroom caps are checked at upload and
classroom creation.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.tier_provider import ITierProvider
from src.models.completion import CompletionResult
from src.models.usage import TierLimits, TierTable, UsageSnapshot
from src.utils.errors import QuotaExceededError
from src.utils.tokens import weighted_tokens

logger = structlog.get_logger(logger_name=__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class QuotaGuard:
    """Enforces per-account daily token, storage, and classroom limits."""

    def __init__(
        self,
        store: IMetadataStore,
        tiers: ITierProvider,
        tier_table: TierTable,
        *,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._store = store
        self._tiers = tiers
        self._tier_table = tier_table
        self._today = today

    async def check_and_reserve(self, account_id: str, estimated_weighted_tokens: int) -> TierLimits:
        """Fail with :class:`QuotaExceededError` if the estimate would exceed today's cap."""
        limits = await self._tiers.get_limits(account_id)
        usage = await self._store.get_usage(account_id, self._today())
        projected = usage.weighted_tokens + max(0, estimated_weighted_tokens)

        if projected > limits.max_daily_weighted_tokens:
            logger.warning(
                "quota_rejected",
                account_id=account_id,
                used=usage.weighted_tokens,
                estimate=estimated_weighted_tokens,
                cap=limits.max_daily_weighted_tokens,
            )
            raise QuotaExceededError(
                message=(
                    f"Daily token limit reached ({usage.weighted_tokens}/"
                    f"{limits.max_daily_weighted_tokens}); this request needs about "
                    f"{estimated_weighted_tokens} more"
                ),
            )
        return limits

    def weigh(self, raw_tokens: int, model: str | None) -> int:
        return weighted_tokens(raw_tokens, self._tier_table.weight_for(model))

    async def record_usage(self, account_id: str, result: CompletionResult) -> int:
        """Record a completed call's weighted tokens; returns the weighted amount."""
        cost = self.weigh(result.total_tokens, result.model)
        await self.record_weighted(account_id, cost)
        return cost

    async def record_weighted(self, account_id: str, weighted: int) -> int:
        """Add already-weighted tokens to today's counter; returns the new total."""
        if weighted <= 0:
            usage = await self._store.get_usage(account_id, self._today())
            return usage.weighted_tokens
        total = await self._store.add_usage(account_id, self._today(), weighted)
        logger.info("usage_recorded", account_id=account_id, weighted=weighted, total_today=total)
        return total

    async def check_storage(self, account_id: str, additional_bytes: int) -> None:
        limits = await self._tiers.get_limits(account_id)
        used = await self._store.storage_bytes(account_id)
        if used + additional_bytes > limits.max_storage_bytes:
            logger.warning(
                "storage_quota_rejected",
                account_id=account_id,
                used=used,
                additional=additional_bytes,
                cap=limits.max_storage_bytes,
            )
            raise QuotaExceededError(
                message=f"Storage limit reached ({used + additional_bytes} > {limits.max_storage_bytes} bytes)",
            )

    async def check_classroom_slot(self, account_id: str) -> None:
        limits = await self._tiers.get_limits(account_id)
        count = await self._store.count_classrooms(account_id)
        if count >= limits.max_classrooms:
            logger.warning("classroom_quota_rejected", account_id=account_id, count=count)
            raise QuotaExceededError(
                message=f"Classroom limit reached ({count}/{limits.max_classrooms})",
            )

    async def snapshot(self, account_id: str) -> UsageSnapshot:
        tier = await self._tiers.get_tier(account_id)
        limits = self._tier_table.limits_for(tier)
        usage = await self._store.get_usage(account_id, self._today())
        return UsageSnapshot(
            account_id=account_id,
            tier=tier,
            day=usage.day,
            weighted_tokens=usage.weighted_tokens,
            daily_token_cap=limits.max_daily_weighted_tokens,
            storage_bytes=usage.storage_bytes,
            max_storage_bytes=limits.max_storage_bytes,
            classroom_count=usage.classroom_count,
            max_classrooms=limits.max_classrooms,
        )
