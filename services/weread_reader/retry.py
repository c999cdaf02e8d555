"""Retry with exponential backoff for WeRead requests."""

import asyncio
import logging
from functools import wraps
from typing import Callable, Any, Optional, Type, Tuple

logger = logging.getLogger(__name__)


def retry_with_exponential_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None
):
    """
    Decorator to retry a coroutine with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Delay in seconds before the first retry
        exponential_base: Base for exponential backoff calculation
        max_delay: Upper bound for a single delay
        exceptions: Exception types that may be retried
        retry_if: Further narrows which of ``exceptions`` are retried

    Returns:
        Decorated coroutine function with retry logic
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(f"Giving up on {func.__name__} after {attempt + 1} attempts: {e}")
                        raise

                    delay = min(initial_delay * (exponential_base ** attempt), max_delay)
                    attempt += 1
                    logger.warning(
                        f"{func.__name__} failed ({e}), retry {attempt}/{max_retries} in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
