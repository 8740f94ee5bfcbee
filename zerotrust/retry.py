"""
Retry with exponential backoff and jitter.

Only the resolver's cache-miss lookup is retried; verification stages never
retry.
"""

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


def calc_backoff(attempt: int, base: float, cap: float, jitter: bool = True) -> float:
    """Exponential backoff for a 1-based attempt number, capped."""
    delay = base * (2 ** (attempt - 1))
    if jitter:
        delay = delay * random.uniform(0.8, 1.2)
    return min(delay, cap)


def call_with_retry(
    func: Callable[[], T],
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
    tries: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    jitter: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    description: Optional[str] = None,
) -> T:
    """
    Call ``func`` up to ``tries`` times, sleeping between failed attempts.

    The last exception is re-raised once attempts are exhausted. Exceptions
    not listed in ``exceptions`` propagate immediately.
    """
    if tries < 1:
        raise ValueError("tries must be >= 1")
    name = description or getattr(func, "__name__", "call")
    last_exc: Optional[Exception] = None
    for attempt in range(1, tries + 1):
        try:
            return func()
        except exceptions as e:
            last_exc = e
            if attempt < tries:
                delay = calc_backoff(attempt, base_delay, max_delay, jitter)
                logger.warning(
                    f"[retry] {name} failed (attempt {attempt}/{tries}): {e!r}. Retrying in {delay:.2f}s"
                )
                sleep(delay)
            else:
                logger.warning(f"[retry] {name} failed (attempt {attempt}/{tries}): {e!r}. Giving up")
    raise last_exc  # type: ignore
