"""Retry with exponential backoff for remote calls."""

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 410})


def is_retryable(exc: Exception) -> bool:
    """Client errors other than 429 will fail the same way again."""
    status_code = getattr(exc, "status_code", None)
    return status_code not in NON_RETRYABLE_STATUS_CODES


def with_retries(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``max_retries`` times, sleeping ``base_delay * 2**attempt`` in between."""
    for attempt in range(max_retries):
        try:
            return fn()
        except Exception as e:
            if not is_retryable(e) or attempt == max_retries - 1:
                raise

            delay = base_delay * (2**attempt)
            logger.warning(
                "Request failed, retrying",
                error=str(e),
                attempt=attempt + 1,
                max_retries=max_retries,
                wait_time=delay,
            )
            sleep(delay)

    raise ValueError(f"max_retries must be at least 1, got {max_retries}")
