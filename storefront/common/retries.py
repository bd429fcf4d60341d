import asyncio
import functools
import random
from typing import Callable, Optional

import httpx

from storefront.common.custom_exceptions import ApiError, NetworkError
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.common")


def is_recoverable_exception(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, (NetworkError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, ApiError):
        # provider side errors are worth another try, 4xx never are
        return exc.status_code is not None and 500 <= exc.status_code < 600
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return False


async def _sleep_with_jitter(delay: float, jitter: float) -> None:
    jitter_val = random.uniform(-jitter * delay, jitter * delay)
    await asyncio.sleep(max(0.0, delay + jitter_val))


def retry_transient(
    *,
    attempts: int = 3,
    base_delay: float = 0.1,
    factor: float = 2.0,
    max_delay: float = 1.0,
    jitter: float = 0.15,
    if_retryable: Optional[Callable[[BaseException], bool]] = None,
    per_attempt_timeout: Optional[float] = None,
):
    """
    Retry an async callable on transient failures with exponential backoff.

    Only safe for idempotent calls (reads). The last exception is re-raised
    once attempts are exhausted or the failure is not retryable.
    """
    if if_retryable is None:
        if_retryable = is_recoverable_exception

    def deco(fn: Callable):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    if per_attempt_timeout:
                        return await asyncio.wait_for(fn(*args, **kwargs), timeout=per_attempt_timeout)
                    return await fn(*args, **kwargs)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    try:
                        retryable = if_retryable(exc)
                    except Exception:
                        retryable = False
                    if not retryable or attempt == attempts:
                        raise

                    delay = min(max_delay, base_delay * (factor ** (attempt - 1)))
                    logger.debug("read retry attempt %d failed; retrying in %f: %s", attempt, delay, exc)
                    await _sleep_with_jitter(delay, jitter)
        return wrapper
    return deco
