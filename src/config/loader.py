"""YAML tier-table loader with built-in defaults.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Tier configuration is resolved in layers (later layers override earlier):
#
#   1. _DEFAULT_TIERS below   -- values the service ships with
#   2. config/config.yaml     -- deployment overrides checked into the repo
#
# The YAML ``tiers`` section is deep-merged on top of the defaults, so a
# deployment can raise one tier's daily cap without restating the rest:
#
#   tiers:
#     limits:
#       FREE: {max_daily_weighted_tokens: 80000}
#
# The merged dict is validated once into a frozen TierTable; a malformed
# file is a ConfigurationError at startup rather than a runtime surprise.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.config.settings import Settings
from src.models.usage import TierTable
from src.utils.errors import ConfigurationError

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT = "text/plain"
MARKDOWN = "text/markdown"

_MB = 1024 * 1024

_DEFAULT_TIERS: dict[str, Any] = {
    "limits": {
        "FREE": {
            "max_classrooms": 5,
            "max_storage_bytes": 100 * _MB,
            "max_daily_weighted_tokens": 50_000,
        },
        "PREMIUM": {
            "max_classrooms": 50,
            "max_storage_bytes": 2048 * _MB,
            "max_daily_weighted_tokens": 1_000_000,
        },
    },
    "extractors": {
        "FREE": {
            PDF: {"primary": "pdf-text"},
            DOCX: {"primary": "docx"},
            TEXT: {"primary": "plain-text"},
            MARKDOWN: {"primary": "plain-text"},
        },
        "PREMIUM": {
            PDF: {"primary": "pdf-vision", "fallback": "pdf-text"},
            DOCX: {"primary": "docx"},
            TEXT: {"primary": "plain-text"},
            MARKDOWN: {"primary": "plain-text"},
        },
    },
    "model_weights": {
        "gpt-4o-mini": 0.2,
        "gpt-4o": 1.0,
        "gemini-2.0-flash": 0.15,
        "gemini-2.5-pro": 1.25,
        "claude-sonnet-4-20250514": 1.0,
        "text-embedding-3-small": 0.02,
        "whisper-1": 0.1,
    },
    "default_weight": 1.0,
}


def load_tier_table(path: str | None = None) -> TierTable:
    """Load the tier table, merging ``tiers`` from the YAML file over defaults.

    Args:
        path: YAML file path; defaults to ``Settings().tiers_config_path``.

    Returns:
        A validated, frozen TierTable.

    Raises:
        ConfigurationError: If the YAML cannot be parsed or fails validation.
    """
    if path is None:
        path = Settings().tiers_config_path

    merged = copy.deepcopy(_DEFAULT_TIERS)
    yaml_config = _read_yaml(Path(path))
    _deep_merge(merged, yaml_config.get("tiers") or {})

    try:
        return TierTable.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid tier configuration in {path}: {exc}") from exc


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(message=f"Cannot parse {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping")
    return data


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
