"""Account tiers, tier tables, and per-day usage counters.

The tier table is data, not code: extractor routing per (tier, MIME type),
numeric limits per tier, and per-model cost weights are loaded from YAML at
startup (see ``src/config/loader.py``) into :class:`TierTable`.  Adding a
tier or an extractor means editing ``config/config.yaml``; no orchestration
code changes.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AccountTier(str, Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class TierLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_classrooms: int = Field(ge=0)
    max_storage_bytes: int = Field(ge=0)
    max_daily_weighted_tokens: int = Field(ge=0)


class ExtractorRoute(BaseModel):
    """Primary extractor plus an optional single fallback."""

    model_config = ConfigDict(frozen=True)

    primary: str
    fallback: str | None = None


class TierTable(BaseModel):
    """Resolved tier configuration.

    ``extractors`` is keyed ``tier -> mime type -> route``.
    """

    model_config = ConfigDict(frozen=True)

    limits: dict[AccountTier, TierLimits]
    extractors: dict[AccountTier, dict[str, ExtractorRoute]]
    model_weights: dict[str, float] = Field(default_factory=dict)
    default_weight: float = 1.0

    def limits_for(self, tier: AccountTier) -> TierLimits:
        return self.limits[tier]

    def route_for(self, tier: AccountTier, mime_type: str) -> ExtractorRoute | None:
        return self.extractors.get(tier, {}).get(_normalize_mime(mime_type))

    def weight_for(self, model: str | None) -> float:
        if model is None:
            return self.default_weight
        return self.model_weights.get(model, self.default_weight)

    def supported_mime_types(self, tier: AccountTier) -> list[str]:
        return sorted(self.extractors.get(tier, {}))


def _normalize_mime(mime_type: str) -> str:
    return mime_type.split(";", 1)[0].strip().lower()


class UsageCounter(BaseModel):
    """Weighted tokens consumed by one account on one day.

    Classroom count and storage bytes are account-wide totals reported
    alongside so the quota view has one shape.
    """

    model_config = ConfigDict(frozen=True)

    account_id: str
    day: date
    weighted_tokens: int = Field(default=0, ge=0)
    classroom_count: int = Field(default=0, ge=0)
    storage_bytes: int = Field(default=0, ge=0)


class UsageSnapshot(BaseModel):
    """Usage compared with the account's tier limits."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    tier: AccountTier
    day: date
    weighted_tokens: int
    daily_token_cap: int
    storage_bytes: int
    max_storage_bytes: int
    classroom_count: int
    max_classrooms: int

    @property
    def remaining_tokens(self) -> int:
        return max(0, self.daily_token_cap - self.weighted_tokens)
