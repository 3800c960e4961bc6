"""Unit tests for DynamoDB lease locks."""

import time

import pytest

from booking_engine.models import ConcurrencyConflict, ErrorCode
from booking_engine.services.dynamodb import DynamoDBService
from booking_engine.services.locks import LockService


@pytest.fixture
def locks(db: DynamoDBService) -> LockService:
    return LockService(db)


class TestLockService:
    def test_acquire_and_release(self, locks: LockService) -> None:
        owner = locks.acquire("refund#BKG-1", 60)

        assert owner is not None
        assert locks.acquire("refund#BKG-1", 60) is None
        assert locks.release("refund#BKG-1", owner) is True
        assert locks.acquire("refund#BKG-1", 60) is not None

    def test_release_by_other_owner_fails(self, locks: LockService) -> None:
        locks.acquire("refund#BKG-2", 60)

        assert locks.release("refund#BKG-2", "someone-else") is False
        assert locks.acquire("refund#BKG-2", 60) is None

    def test_expired_lease_can_be_taken_over(self, locks: LockService, db: DynamoDBService) -> None:
        stale = int(time.time()) - 120
        db.put_item(
            "processing-locks",
            {"lock_id": "webhook#evt_1", "owner_token": "crashed", "acquired_at": stale, "expires_at": stale + 60},
        )

        owner = locks.acquire("webhook#evt_1", 60)

        assert owner is not None
        assert locks.release("webhook#evt_1", "crashed") is False

    def test_hold_conflict_code(self, locks: LockService) -> None:
        with locks.hold("refund#BKG-3", 60):
            with pytest.raises(ConcurrencyConflict) as exc_info:
                with locks.hold("refund#BKG-3", 60, ErrorCode.REFUND_IN_PROGRESS):
                    pass

        assert exc_info.value.code == ErrorCode.REFUND_IN_PROGRESS
        assert locks.acquire("refund#BKG-3", 60) is not None

    def test_hold_releases_on_error(self, locks: LockService) -> None:
        with pytest.raises(RuntimeError):
            with locks.hold("refund#BKG-4", 60):
                raise RuntimeError("boom")

        assert locks.acquire("refund#BKG-4", 60) is not None
