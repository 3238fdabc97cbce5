"""Bounded retry with exponential backoff for external service calls.

Every call to an embedding, vector index, extraction, or completion service
goes through :func:`call_with_retry`.  Each attempt is wrapped in
``asyncio.wait_for`` so a hung provider is treated exactly like a transient
failure: the helper sleeps ``base_delay * 2 ** (attempt - 1)`` seconds and
tries again, and re-raises the last error once attempts are exhausted.

Timeouts surface as :class:`~src.utils.errors.ProviderUnavailableError` so
callers only need to handle the project's own exception hierarchy.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.errors import ProviderUnavailableError, RateLimitError

_T = TypeVar("_T")

_logger = structlog.get_logger(logger_name=__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ProviderUnavailableError,
    RateLimitError,
)


async def call_with_retry(
    operation: Callable[[], Awaitable[_T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    timeout: float | None = 30.0,
    transient: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
    label: str = "external_call",
) -> _T:
    """Invoke *operation* until it succeeds or *attempts* are used up.

    Parameters
    ----------
    operation:
        Zero-argument callable returning a fresh awaitable per attempt.
    attempts:
        Maximum number of attempts (at least 1).
    base_delay:
        Backoff before the second attempt; doubles on each further attempt.
    timeout:
        Per-attempt timeout in seconds, or ``None`` for no timeout.
    transient:
        Exception types that are retried.  Anything else propagates
        immediately.
    label:
        Short name used in log events.

    Returns
    -------
    _T
        The result of the first successful attempt.

    Raises
    ------
    ProviderUnavailableError
        If the final attempt timed out.
    Exception
        The final transient error, or the first non-transient error.
    """
    attempts = max(1, attempts)
    last_exc: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            if timeout is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError:
            last_exc = ProviderUnavailableError(
                message=f"{label} timed out after {timeout}s",
            )
        except transient as exc:
            last_exc = exc

        if attempt < attempts:
            backoff = base_delay * (2 ** (attempt - 1))
            _logger.warning(
                "retrying_external_call",
                label=label,
                attempt=attempt,
                backoff_s=backoff,
                error=str(last_exc),
            )
            await asyncio.sleep(backoff)

    _logger.error("external_call_exhausted", label=label, attempts=attempts, error=str(last_exc))
    assert last_exc is not None
    raise last_exc
