"""Bounded retry for optimistic-lock conflicts."""

import time
from typing import Callable, TypeVar

from booking_engine.models.errors import ConcurrencyConflict, ErrorCode

from .logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.05


class OptimisticLockError(Exception):
    """Raised inside a retried operation when its version check lost a race."""


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    description: str,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    conflict_code: ErrorCode = ErrorCode.CONCURRENCY_CONFLICT,
) -> T:
    """Run ``operation`` until it stops raising OptimisticLockError.

    The operation must re-read whatever state it checks on every call.

    Raises:
        ConcurrencyConflict: After ``attempts`` lost races.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except OptimisticLockError as e:
            if attempt == attempts:
                logger.warning("%s lost %d optimistic-lock races", description, attempts)
                raise ConcurrencyConflict(
                    code=conflict_code,
                    details={"operation": description, "attempts": attempts},
                ) from e
            delay = base_delay * (2 ** (attempt - 1))
            logger.info(
                "%s conflict on attempt %d/%d, retrying in %.2fs",
                description,
                attempt,
                attempts,
                delay,
            )
            time.sleep(delay)
    raise AssertionError("unreachable")
