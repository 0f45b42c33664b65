"""Shared tenacity retry policy for external service clients."""

from __future__ import annotations

from collections.abc import Callable

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential, wait_random


def build_retryer(
    is_retryable: Callable[[BaseException], bool],
    *,
    max_retries: int,
    backoff_seconds: float,
) -> Retrying:
    """Exponential backoff with jitter, re-raising the last error."""

    wait_strategy = wait_exponential(
        multiplier=backoff_seconds,
        min=backoff_seconds,
        max=max(backoff_seconds, backoff_seconds * 8),
    ) + wait_random(0.0, 0.25)
    return Retrying(
        retry=retry_if_exception(is_retryable),
        wait=wait_strategy,
        stop=stop_after_attempt(max(1, max_retries)),
        reraise=True,
    )
