"""
Retry logic with a fixed delay for transient HTTP failures.
"""

import asyncio
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

import aiohttp
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (aiohttp.ClientError, asyncio.TimeoutError)


def is_retryable(exc: BaseException) -> bool:
    """Client errors (4xx except 429) are final."""
    if isinstance(exc, aiohttp.ClientResponseError):
        return not (400 <= exc.status < 500 and exc.status != 429)
    return True


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    delay: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    **kwargs: Any,
) -> T:
    """
    Call ``func`` up to ``max_retries + 1`` times, sleeping ``delay`` seconds between
    attempts. The last exception is re-raised once the budget is spent.
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on as exc:
            if not is_retryable(exc) or attempt >= max_retries:
                logger.warning(
                    "Giving up after failed attempt",
                    func=getattr(func, "__name__", repr(func)),
                    attempt=attempt + 1,
                    error=f"{type(exc).__name__}: {exc}",
                )
                raise

            logger.info(
                "Attempt failed, retrying",
                func=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=delay,
                error=f"{type(exc).__name__}: {exc}",
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")

