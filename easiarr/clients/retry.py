"""Retry utilities for app API calls.

Provides exponential backoff retry logic for transient HTTP failures.
Reads retry connection errors, timeouts and 5xx server errors. Writes
retry only errors raised before the request left the client, so a POST
the server may already have applied is never sent twice. 4xx client
errors (auth failures, validation, not found) are never retried.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import httpx

log = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 1.0  # seconds
DEFAULT_BACKOFF_MAX = 30.0

RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
    httpx.PoolTimeout,
)

# Raised before any byte of the request reached the server
UNSENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.PoolTimeout,
)

RETRYABLE_STATUS_CODES = {500, 502, 503, 504, 520, 521, 522, 523, 524}

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}

T = TypeVar("T")


def _compute_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential backoff: base * 2^attempt, capped at cap."""
    return min(base * (2 ** attempt), cap)


def _call_with_retry(
    label: str,
    func: Callable[..., T],
    args: tuple,
    kwargs: dict,
    *,
    max_retries: int,
    backoff_base: float,
    backoff_max: float,
    retryable_exceptions: Tuple[Type[Exception], ...],
    retry_status: bool,
) -> T:
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        final = attempt >= max_retries
        try:
            result = func(*args, **kwargs)
        except retryable_exceptions as exc:
            if final:
                raise
            last_exception = exc
            reason = exc.__class__.__name__
        except httpx.HTTPStatusError as exc:
            if not retry_status or exc.response.status_code not in RETRYABLE_STATUS_CODES or final:
                raise
            last_exception = exc
            reason = f"HTTP {exc.response.status_code}"
        else:
            if not (
                retry_status
                and isinstance(result, httpx.Response)
                and result.status_code in RETRYABLE_STATUS_CODES
                and not final
            ):
                return result
            reason = f"HTTP {result.status_code}"

        delay = _compute_delay(attempt, backoff_base, backoff_max)
        log.debug(
            "Retrying %s (%s, attempt %d/%d, backoff %.1fs)",
            label,
            reason,
            attempt + 1,
            max_retries,
            delay,
        )
        time.sleep(delay)

    if last_exception:
        raise last_exception
    raise RuntimeError(f"Retry logic exhausted for {label}")


def retry_request(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    backoff_max: float = DEFAULT_BACKOFF_MAX,
    idempotent: bool = True,
    **kwargs: Any,
) -> T:
    """Call a function with retry logic.

    Pass ``idempotent=False`` for writes: only :data:`UNSENT_EXCEPTIONS`
    are retried then, and a 5xx answer is returned as is.

    Usage::

        response = retry_request(client.get, "/api/v3/rootfolder")
    """
    return _call_with_retry(
        "request",
        func,
        args,
        kwargs,
        max_retries=max_retries,
        backoff_base=backoff_base,
        backoff_max=backoff_max,
        retryable_exceptions=RETRYABLE_EXCEPTIONS if idempotent else UNSENT_EXCEPTIONS,
        retry_status=idempotent,
    )
