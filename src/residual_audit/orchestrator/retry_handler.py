"""Retry logic with exponential backoff"""

import time
from typing import Any, Callable, Tuple, Type

from residual_audit.utils.errors import DatabaseError, MasterDataUnavailableError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)


def retry_with_exponential_backoff(
    func: Callable,
    max_retries: int = 3,
    base_delay: float = 1,
    max_delay: float = 8,
    *args,
    retry_on: Tuple[Type[Exception], ...] = (DatabaseError,),
    **kwargs
) -> Any:
    """
    Retry an idempotent store operation with exponential backoff

    Args:
        func: Function to retry
        max_retries: Maximum attempts
        base_delay: Base delay in seconds
        max_delay: Max delay cap in seconds
        retry_on: Exception types treated as transient
        *args, **kwargs: Arguments to pass to func

    Returns:
        Function result

    Raises:
        DatabaseError: If all retries are exhausted
    """
    for attempt in range(max_retries):
        try:
            return func(*args, **kwargs)

        except MasterDataUnavailableError:
            raise

        except retry_on as e:
            if attempt == max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted")
                raise DatabaseError(f"Failed after {max_retries} attempts: {e}") from e

            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            time.sleep(delay)
