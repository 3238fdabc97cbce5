"""Abstract base class for the account/tier service."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.usage import AccountTier, TierLimits


# Concrete implementations: SQLiteTierProvider
# Located in: src/providers/account/
class ITierProvider(ABC):
    """Contract for resolving an account's tier and its limits."""

    @abstractmethod
    async def get_tier(self, account_id: str) -> AccountTier:
        """Return the account's tier (unknown accounts get the default tier)."""

    @abstractmethod
    async def get_limits(self, account_id: str) -> TierLimits:
        """Return the limits table row for the account's tier."""
