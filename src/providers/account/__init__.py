"""Account tier provider implementations."""

from src.providers.account.sqlite_tier_provider import SQLiteTierProvider

__all__ = ["SQLiteTierProvider"]
