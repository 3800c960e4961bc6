"""Processing locks with a lease, stored in DynamoDB.

A lock is a row keyed by ``lock_id`` that carries an owner token and an
``expires_at`` epoch. Acquisition succeeds when no row exists or the
previous lease has expired, so a crashed holder never blocks forever.
"""

import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from booking_engine.models.errors import ConcurrencyConflict, ErrorCode
from booking_engine.utils.logging import get_logger

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


class LockService:
    TABLE = "processing-locks"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def acquire(self, lock_id: str, ttl_seconds: int) -> str | None:
        """Try to take the lock.

        Returns:
            The owner token on success, None if another holder has it.
        """
        now = int(time.time())
        owner = uuid.uuid4().hex
        acquired = self.db.put_item(
            self.TABLE,
            {"lock_id": lock_id, "owner_token": owner, "acquired_at": now, "expires_at": now + ttl_seconds},
            condition_expression="attribute_not_exists(lock_id) OR expires_at < :now",
            expression_attribute_values={":now": now},
        )
        if not acquired:
            logger.info("Lock %s is held by another caller", lock_id)
            return None
        return owner

    def release(self, lock_id: str, owner: str) -> bool:
        """Release the lock if ``owner`` still holds it."""
        released = self.db.delete_item(
            self.TABLE,
            {"lock_id": lock_id},
            condition_expression="attribute_not_exists(lock_id) OR owner_token = :owner",
            expression_attribute_values={":owner": owner},
        )
        if not released:
            logger.warning("Lock %s was taken over before release", lock_id)
        return released

    @contextmanager
    def hold(
        self,
        lock_id: str,
        ttl_seconds: int,
        conflict_code: ErrorCode = ErrorCode.CONCURRENCY_CONFLICT,
    ) -> Iterator[str]:
        """Hold a lock for the duration of a block.

        Raises:
            ConcurrencyConflict: If the lock is already held.
        """
        owner = self.acquire(lock_id, ttl_seconds)
        if owner is None:
            raise ConcurrencyConflict(code=conflict_code, details={"lock_id": lock_id})
        try:
            yield owner
        finally:
            self.release(lock_id, owner)
