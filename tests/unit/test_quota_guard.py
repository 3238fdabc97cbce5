"""Unit tests for the QuotaGuard and the tier-table loader."""

from __future__ import annotations

import uuid
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from src.config.loader import load_tier_table
from src.models.completion import CompletionResult
from src.models.document import Classroom, Document
from src.models.usage import AccountTier, TierTable
from src.providers.account.sqlite_tier_provider import SQLiteTierProvider
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.services.quota_guard import QuotaGuard
from src.utils.errors import ConfigurationError, QuotaExceededError

_TODAY = date(2026, 3, 14)
_CAP = 1000
_ACCOUNT = "acct-1"


def _write_tiers(tmp_path: Path, **free_limits: int) -> str:
    path = tmp_path / "tiers.yaml"
    limits = {"max_daily_weighted_tokens": _CAP, "max_storage_bytes": 5000, "max_classrooms": 2}
    limits.update(free_limits)
    path.write_text(yaml.safe_dump({"tiers": {"limits": {"FREE": limits}}}), encoding="utf-8")
    return str(path)


@pytest.fixture()
def small_table(tmp_path: Path) -> TierTable:
    return load_tier_table(_write_tiers(tmp_path))


@pytest.fixture()
async def small_tiers(tmp_path: Path, small_table: TierTable) -> SQLiteTierProvider:
    provider = SQLiteTierProvider(tmp_path / "studyrag.db", small_table)
    await provider.initialize()
    return provider


@pytest.fixture()
def guard(
    store: SQLiteMetadataStore, small_tiers: SQLiteTierProvider, small_table: TierTable
) -> QuotaGuard:
    return QuotaGuard(store, small_tiers, small_table, today=lambda: _TODAY)


# ── Daily token budget ───────────────────────────────────


class TestCheckAndReserve:
    @pytest.mark.asyncio()
    async def test_estimate_that_would_exceed_cap_is_rejected(
        self, guard: QuotaGuard, store: SQLiteMetadataStore
    ) -> None:
        await store.add_usage(_ACCOUNT, _TODAY, _CAP - 1)

        with pytest.raises(QuotaExceededError, match="Daily token limit"):
            await guard.check_and_reserve(_ACCOUNT, 5)

    @pytest.mark.asyncio()
    async def test_estimate_that_fits_exactly_is_accepted(
        self, guard: QuotaGuard, store: SQLiteMetadataStore
    ) -> None:
        await store.add_usage(_ACCOUNT, _TODAY, _CAP - 1)

        limits = await guard.check_and_reserve(_ACCOUNT, 1)

        assert limits.max_daily_weighted_tokens == _CAP

    @pytest.mark.asyncio()
    async def test_reservation_writes_nothing(
        self, guard: QuotaGuard, store: SQLiteMetadataStore
    ) -> None:
        await guard.check_and_reserve(_ACCOUNT, 300)
        usage = await store.get_usage(_ACCOUNT, _TODAY)
        assert usage.weighted_tokens == 0

    @pytest.mark.asyncio()
    async def test_new_day_starts_at_zero(
        self,
        store: SQLiteMetadataStore,
        small_tiers: SQLiteTierProvider,
        small_table: TierTable,
    ) -> None:
        await store.add_usage(_ACCOUNT, _TODAY, _CAP)
        tomorrow = QuotaGuard(store, small_tiers, small_table, today=lambda: date(2026, 3, 15))

        await tomorrow.check_and_reserve(_ACCOUNT, _CAP)

    @pytest.mark.asyncio()
    async def test_premium_accounts_use_premium_cap(
        self, guard: QuotaGuard, store: SQLiteMetadataStore, small_tiers: SQLiteTierProvider
    ) -> None:
        await store.add_usage(_ACCOUNT, _TODAY, _CAP)
        await small_tiers.set_tier(_ACCOUNT, AccountTier.PREMIUM)

        limits = await guard.check_and_reserve(_ACCOUNT, 5000)

        assert limits.max_daily_weighted_tokens == 1_000_000


class TestRecordUsage:
    @pytest.mark.asyncio()
    async def test_records_weighted_tokens(
        self, guard: QuotaGuard, store: SQLiteMetadataStore
    ) -> None:
        result = CompletionResult(
            text="answer",
            model="gpt-4o-mini",
            provider="openai",
            input_tokens=400,
            output_tokens=100,
        )

        cost = await guard.record_usage(_ACCOUNT, result)

        assert cost == 100  # 500 raw tokens * 0.2
        usage = await store.get_usage(_ACCOUNT, _TODAY)
        assert usage.weighted_tokens == 100

    def test_unknown_model_uses_default_weight(self, small_table: TierTable) -> None:
        guard = QuotaGuard(MagicMock(), MagicMock(), small_table)
        assert guard.weigh(300, "some-new-model") == 300
        assert guard.weigh(300, None) == 300

    @pytest.mark.asyncio()
    async def test_record_weighted_accumulates(self, guard: QuotaGuard) -> None:
        await guard.record_weighted(_ACCOUNT, 40)
        total = await guard.record_weighted(_ACCOUNT, 60)
        assert total == 100

    @pytest.mark.asyncio()
    async def test_zero_cost_is_not_written(
        self, guard: QuotaGuard, store: SQLiteMetadataStore
    ) -> None:
        total = await guard.record_weighted(_ACCOUNT, 0)
        assert total == 0
        assert (await store.get_usage(_ACCOUNT, _TODAY)).weighted_tokens == 0


# ── Storage and classrooms ───────────────────────────────


async def _add_classroom(store: SQLiteMetadataStore) -> Classroom:
    return await store.create_classroom(
        Classroom(id=str(uuid.uuid4()), account_id=_ACCOUNT, name="Room")
    )


class TestStorageAndClassrooms:
    @pytest.mark.asyncio()
    async def test_storage_cap(self, guard: QuotaGuard, store: SQLiteMetadataStore) -> None:
        classroom = await _add_classroom(store)
        await store.create_document(
            Document(
                id="doc-1",
                classroom_id=classroom.id,
                filename="a.txt",
                mime_type="text/plain",
                size_bytes=4000,
                storage_key="k",
            )
        )

        await guard.check_storage(_ACCOUNT, 1000)
        with pytest.raises(QuotaExceededError, match="Storage limit"):
            await guard.check_storage(_ACCOUNT, 1001)

    @pytest.mark.asyncio()
    async def test_classroom_cap(self, guard: QuotaGuard, store: SQLiteMetadataStore) -> None:
        await _add_classroom(store)
        await guard.check_classroom_slot(_ACCOUNT)
        await _add_classroom(store)

        with pytest.raises(QuotaExceededError, match="Classroom limit"):
            await guard.check_classroom_slot(_ACCOUNT)

    @pytest.mark.asyncio()
    async def test_snapshot(self, guard: QuotaGuard, store: SQLiteMetadataStore) -> None:
        await _add_classroom(store)
        await guard.record_weighted(_ACCOUNT, 250)

        snapshot = await guard.snapshot(_ACCOUNT)

        assert snapshot.tier is AccountTier.FREE
        assert snapshot.day == _TODAY
        assert snapshot.weighted_tokens == 250
        assert snapshot.remaining_tokens == _CAP - 250
        assert snapshot.classroom_count == 1
        assert snapshot.max_classrooms == 2


# ── Tier table loading ───────────────────────────────────


class TestTierTableLoader:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        table = load_tier_table(str(tmp_path / "absent.yaml"))

        assert table.limits_for(AccountTier.FREE).max_daily_weighted_tokens == 50_000
        assert table.route_for(AccountTier.PREMIUM, "application/pdf").fallback == "pdf-text"

    def test_yaml_overrides_merge_over_defaults(self, small_table: TierTable) -> None:
        assert small_table.limits_for(AccountTier.FREE).max_daily_weighted_tokens == _CAP
        assert small_table.limits_for(AccountTier.PREMIUM).max_classrooms == 50
        assert small_table.weight_for("gpt-4o-mini") == 0.2

    def test_repo_config_file_is_valid(self, project_root: Path) -> None:
        table = load_tier_table(str(project_root / "config" / "config.yaml"))
        assert AccountTier.FREE in table.limits

    def test_invalid_values_are_config_errors(self, tmp_path: Path) -> None:
        path = _write_tiers(tmp_path, max_classrooms=-1)
        with pytest.raises(ConfigurationError):
            load_tier_table(path)

    def test_non_mapping_file_is_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_tier_table(str(path))
