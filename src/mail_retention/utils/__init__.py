"""Utility functions for mail-retention."""

import time
from functools import wraps
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})


def is_transient_http_error(exc: BaseException) -> bool:
    """Return True for Google API errors worth retrying (rate limits, 5xx)."""
    resp = getattr(exc, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) in TRANSIENT_HTTP_STATUSES
    except (TypeError, ValueError):
        return False


def retry_on_failure(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retryable: Callable[[BaseException], bool] = is_transient_http_error,
) -> Callable[[F], F]:
    """Decorator to retry a function on transient failure with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        retryable: Predicate deciding whether an exception is transient.
            Anything else is raised immediately.

    Returns:
        Decorated function with retry logic.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not retryable(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "function_retry_exhausted",
                            function=getattr(func, "__name__", repr(func)),
                            attempts=max_retries + 1,
                            error=str(e),
                        )
                        raise
                    logger.warning(
                        "function_retry",
                        function=getattr(func, "__name__", repr(func)),
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=current_delay,
                        error=str(e),
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff

            raise AssertionError("unreachable")

        return wrapper  # type: ignore

    return decorator
