"""Token estimation and cost weighting for quota accounting.

Estimates are deliberately rough: about four characters per token with a
10% safety margin.  They are only used for the Quota Guard's advisory
reservation; actual usage is recorded from the provider's reported counts.
"""

import math

_CHARS_PER_TOKEN = 4
_SAFETY_MARGIN = 1.1


def tokens_for_chars(chars: int) -> int:
    """Estimate the tokens needed for *chars* characters of text."""
    if chars <= 0:
        return 0
    return math.ceil(chars / _CHARS_PER_TOKEN * _SAFETY_MARGIN)


def weighted_tokens(raw_tokens: int, weight: float) -> int:
    """Apply a model cost weight to a raw token count, rounding up."""
    if raw_tokens <= 0:
        return 0
    return math.ceil(round(raw_tokens * weight, 6))
