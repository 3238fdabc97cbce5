"""Configuration module -- exports Settings and the tier-table loader."""

from src.config.loader import load_tier_table
from src.config.settings import Settings

__all__ = ["Settings", "load_tier_table"]
