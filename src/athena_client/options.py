"""Process-wide driver options: query caching and retry behaviour."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace

from athena_client.config import MAX_CACHE_SIZE, get_settings
from athena_client.observability import get_logger
from athena_client.query.cache import get_query_cache

logger = get_logger(__name__)


@dataclass(frozen=True)
class DriverOptions:
    """Snapshot of the options a result set is created with."""

    cache_size: int = 0
    retry: int = 5
    retry_quiet: bool = False


_options: DriverOptions | None = None
_lock = threading.Lock()


def get_options() -> DriverOptions:
    """Current options, initialised from settings on first use."""
    global _options
    with _lock:
        if _options is None:
            cache = get_settings().cache
            _options = DriverOptions(
                cache_size=cache.cache_size,
                retry=cache.retry,
                retry_quiet=cache.retry_quiet,
            )
        return _options


def set_options(
    cache_size: int | None = None,
    clear_cache: bool = False,
    retry: int | None = None,
    retry_quiet: bool | None = None,
) -> DriverOptions:
    """Change the driver options for every result set created afterwards.

    Args:
        cache_size: Number of distinct queries to cache, 0 to 100. Zero turns
            caching off without forgetting the cached entries.
        clear_cache: Empty the query cache.
        retry: Attempts made for throttled or otherwise transient remote calls.
        retry_quiet: Suppress the message logged before each retry.

    Returns:
        The new options.

    Raises:
        ValueError: If ``cache_size`` or ``retry`` is out of range.
    """
    global _options
    if cache_size is not None and not 0 <= cache_size <= MAX_CACHE_SIZE:
        raise ValueError(f"cache_size must be between 0 and {MAX_CACHE_SIZE}")
    if retry is not None and retry < 0:
        raise ValueError("retry must be non-negative")

    current = get_options()
    updated = replace(
        current,
        cache_size=current.cache_size if cache_size is None else cache_size,
        retry=current.retry if retry is None else retry,
        retry_quiet=current.retry_quiet if retry_quiet is None else retry_quiet,
    )

    cache = get_query_cache()
    cache.capacity = updated.cache_size
    if clear_cache:
        cache.clear()
        logger.info("Query cache cleared")

    with _lock:
        _options = updated
    return updated


def reset_options() -> None:
    """Forget option overrides (useful for testing)."""
    global _options
    with _lock:
        _options = None
