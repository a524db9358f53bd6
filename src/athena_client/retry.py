"""Retry with jittered exponential backoff for remote calls."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import Any, TypeVar

from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from athena_client.observability import get_logger
from athena_client.options import get_options
from athena_client.query.models import RemoteCallError

T = TypeVar("T")

logger = get_logger(__name__)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalError",
        "InternalFailure",
        "InternalServerException",
        "RequestLimitExceeded",
        "RequestTimeout",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
    }
)


def error_code(exc: BaseException) -> str | None:
    """Return the AWS error code of a ``ClientError``, if any."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def is_transient_error(exc: BaseException) -> bool:
    """Classify throttling, server-side and network errors as retryable."""
    if isinstance(exc, ClientError):
        return error_code(exc) in TRANSIENT_ERROR_CODES
    return isinstance(exc, (BotoConnectionError, HTTPClientError))


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed ``attempt`` (1-based)."""
    return random.uniform(0, 2**attempt - 1)


def retry_api_call(
    func: Callable[..., T],
    *args: Any,
    retry: int | None = None,
    retry_quiet: bool | None = None,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    **kwargs: Any,
) -> T:
    """Call ``func`` and retry it on retryable errors.

    Args:
        func: The remote operation.
        *args: Positional arguments for ``func``.
        retry: Maximum number of attempts; values below one still make one attempt.
            Defaults to the current driver options.
        retry_quiet: Suppress the per-retry log message. Defaults to the current
            driver options.
        is_retryable: Classifier separating retryable from terminal errors.
        **kwargs: Keyword arguments for ``func``.

    Returns:
        Whatever ``func`` returns.

    Raises:
        Exception: The last error once attempts are exhausted, or any terminal
            error straight away.
    """
    if retry is None or retry_quiet is None:
        options = get_options()
        retry = options.retry if retry is None else retry
        retry_quiet = options.retry_quiet if retry_quiet is None else retry_quiet
    attempts = max(retry, 1)
    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                raise
            delay = backoff_delay(attempt)
            if not retry_quiet:
                logger.warning(
                    "Request failed, retrying",
                    operation=getattr(func, "__name__", repr(func)),
                    attempt=attempt,
                    delay_seconds=round(delay, 1),
                    error=str(e),
                )
            time.sleep(delay)
    raise AssertionError("unreachable")


def poll_delay(attempt: int, poll_interval: float | None, max_interval: float) -> float:
    """Seconds to sleep before status poll number ``attempt`` (0-based).

    A fixed ``poll_interval`` wins; otherwise the delay doubles from 0.5s up to
    ``max_interval``.
    """
    if poll_interval is not None:
        return poll_interval
    return min(0.5 * 2**attempt, max_interval)


def remote_call(
    func: Callable[..., T],
    *,
    retry: int,
    retry_quiet: bool,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    **kwargs: Any,
) -> T:
    """``retry_api_call`` that reports botocore failures as ``RemoteCallError``."""
    try:
        return retry_api_call(
            func, retry=retry, retry_quiet=retry_quiet, is_retryable=is_retryable, **kwargs
        )
    except (ClientError, BotoCoreError) as e:
        raise RemoteCallError(getattr(func, "__name__", "remote call"), str(e)) from e
