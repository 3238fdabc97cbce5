"""SQLite-backed account tier provider.

Stores one row per account that has been assigned a tier.  Accounts with no
row get the configured default tier (FREE), so new sign-ups need no write.
Limits come from the loaded :class:`~src.models.usage.TierTable`.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.tier_provider import ITierProvider
from src.models.usage import AccountTier, TierLimits, TierTable

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS accounts (
    account_id  TEXT PRIMARY KEY,
    tier        TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_UPSERT_SQL = """\
INSERT INTO accounts (account_id, tier)
VALUES (?, ?)
ON CONFLICT(account_id)
DO UPDATE SET tier       = excluded.tier,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""


class SQLiteTierProvider(ITierProvider):
    """Tier lookups backed by an ``accounts`` table."""

    def __init__(
        self,
        db_path: str | Path,
        tier_table: TierTable,
        default_tier: AccountTier = AccountTier.FREE,
    ) -> None:
        self._db_path = Path(db_path)
        self._tier_table = tier_table
        self._default_tier = default_tier

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()
        logger.info("accounts_table_initialized", path=str(self._db_path))

    async def get_tier(self, account_id: str) -> AccountTier:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT tier FROM accounts WHERE account_id = ?", (account_id,)
            )
            row = await cursor.fetchone()
        return AccountTier(row[0]) if row else self._default_tier

    async def get_limits(self, account_id: str) -> TierLimits:
        return self._tier_table.limits_for(await self.get_tier(account_id))

    async def set_tier(self, account_id: str, tier: AccountTier) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_SQL, (account_id, tier.value))
            await db.commit()
        logger.info("account_tier_set", account_id=account_id, tier=tier.value)
