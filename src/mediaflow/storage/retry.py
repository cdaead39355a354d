"""Bounded retry for transient database failures."""
import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from mediaflow.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    OperationalError,
    ConnectionError,
    TimeoutError,
)


def is_transient_exc(e: BaseException) -> bool:
    if isinstance(e, DBAPIError) and e.connection_invalidated:
        return True
    return isinstance(e, TRANSIENT_ERRORS)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay_s: float = 0.5,
) -> T:
    """
    Await ``fn()`` up to ``attempts`` times with a fixed delay in between.

    Non-transient errors are raised immediately; the last transient error
    is re-raised once attempts run out.
    """
    attempts = max(1, attempts)
    last_err: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as e:
            last_err = e
            if not is_transient_exc(e) or attempt == attempts:
                break
            logger.warning(
                f"[retry] Transient error ({e.__class__.__name__}). "
                f"Retrying in {delay_s:.1f}s ({attempt}/{attempts})..."
            )
            await asyncio.sleep(delay_s)
    raise last_err  # let caller decide how to format error
