"""Pytest configuration and fixtures for booking engine tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (every engine table and GSI)
- A StripeService wired to a mocked StripeClient
- Seeded rooms, a camp week and add-ons
- Signed webhook payloads
"""

import datetime as dt
import hashlib
import hmac
import itertools
import json
import os
import time
from types import SimpleNamespace
from typing import Any, Callable, Generator
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-booking")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from booking_engine.engine import BookingEngine, build_engine  # noqa: E402
from booking_engine.models import Addon, Resource, ResourceType  # noqa: E402
from booking_engine.services.dynamodb import DynamoDBService, reset_dynamodb_service  # noqa: E402
from booking_engine.services.pricing import promo_item  # noqa: E402
from booking_engine.services.ssm_service import SSMService, get_ssm_service  # noqa: E402
from booking_engine.services.stripe_service import StripeService, get_stripe_service  # noqa: E402

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
STAY_START = dt.date(2026, 7, 1)
STAY_END = dt.date(2026, 7, 4)


# === Singletons ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset shared service instances before and after each test.

    Tests using mock_aws need a fresh DynamoDB service created inside the
    mock context rather than one left over from a previous test.
    """
    reset_dynamodb_service()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()
    yield
    reset_dynamodb_service()
    get_stripe_service.cache_clear()
    get_ssm_service.cache_clear()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _gsi(name: str, hash_key: str) -> dict[str, Any]:
    return {
        "IndexName": name,
        "KeySchema": [{"AttributeName": hash_key, "KeyType": "HASH"}],
        "Projection": {"ProjectionType": "ALL"},
    }


def _table(
    name: str,
    keys: list[tuple[str, str]],
    indexes: list[tuple[str, str]] | None = None,
) -> dict[str, Any]:
    """Table definition; ``keys`` is [(hash,)] or [(hash, range)] of (attribute, role)."""
    attributes = {attr for attr, _ in keys} | {attr for _, attr in indexes or []}
    table: dict[str, Any] = {
        "TableName": f"test-booking-{name}",
        "KeySchema": [{"AttributeName": attr, "KeyType": role} for attr, role in keys],
        "AttributeDefinitions": [
            {"AttributeName": attr, "AttributeType": "S"} for attr in sorted(attributes)
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }
    if indexes:
        table["GlobalSecondaryIndexes"] = [_gsi(index, attr) for index, attr in indexes]
    return table


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all engine tables for testing."""
    tables = [
        _table("resources", [("resource_id", "HASH")], [("type-index", "resource_type")]),
        _table("addons", [("addon_id", "HASH")]),
        _table("promo-codes", [("code", "HASH")]),
        _table("capacity-ledger", [("resource_id", "HASH"), ("slot", "RANGE")]),
        _table(
            "capacity-assignments",
            [("assignment_id", "HASH")],
            [("booking-index", "booking_id")],
        ),
        _table("bookings", [("booking_id", "HASH")], [("status-index", "status")]),
        _table(
            "payments",
            [("payment_id", "HASH")],
            [
                ("booking-index", "booking_id"),
                ("provider-reference-index", "provider_reference"),
                ("payment-intent-index", "payment_intent_id"),
            ],
        ),
        _table("webhook-events", [("event_id", "HASH")]),
        _table("audit-log", [("audit_id", "HASH")], [("resource-index", "resource_id")]),
        _table("processing-locks", [("lock_id", "HASH")]),
    ]
    for table_config in tables:
        dynamodb_client.create_table(**table_config)


@pytest.fixture
def db(create_tables: None) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService()


# === Stripe Fixtures ===


@pytest.fixture
def stripe_client() -> MagicMock:
    """Mocked StripeClient returning realistic session and refund objects."""
    client = MagicMock()
    sessions = itertools.count(1)
    refunds = itertools.count(1)

    def create_session(params: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        n = next(sessions)
        return SimpleNamespace(
            id=f"cs_test_{n:04d}",
            url=f"https://checkout.stripe.com/c/pay/cs_test_{n:04d}",
            expires_at=params["expires_at"],
            payment_intent=None,
        )

    def create_refund(params: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        return SimpleNamespace(
            id=f"re_test_{next(refunds):04d}",
            amount=params["amount"],
            status="succeeded",
        )

    client.checkout.sessions.create.side_effect = create_session
    client.refunds.create.side_effect = create_refund
    return client


@pytest.fixture
def stripe_service(stripe_client: MagicMock) -> StripeService:
    """StripeService using the mocked client; webhook secret comes from the environment."""
    return StripeService(environment="test", secrets=SSMService("test"), client=stripe_client)


@pytest.fixture
def engine(db: DynamoDBService, stripe_service: StripeService) -> BookingEngine:
    return build_engine(db=db, stripe_service=stripe_service)


# === Sample Data Fixtures ===


@pytest.fixture
def rooms(engine: BookingEngine) -> list[Resource]:
    """Three active rooms with capacities 4, 4 and 2 (10 units in total)."""
    seeded = [
        Resource(
            resource_id="room-dorm",
            name="Dorm",
            resource_type=ResourceType.ROOM,
            capacity=4,
            unit_price=3500,
        ),
        Resource(
            resource_id="room-garden",
            name="Garden Room",
            resource_type=ResourceType.ROOM,
            capacity=4,
            unit_price=6000,
        ),
        Resource(
            resource_id="room-ocean-view",
            name="Ocean View",
            resource_type=ResourceType.ROOM,
            capacity=2,
            unit_price=9000,
        ),
    ]
    for resource in seeded:
        engine.catalog.save_resource(resource)
    return seeded


@pytest.fixture
def camp_week(engine: BookingEngine) -> Resource:
    resource = Resource(
        resource_id="camp-2026-w27",
        name="Surf Camp Week 27",
        resource_type=ResourceType.CAMP_WEEK,
        capacity=2,
        unit_price=65000,
        start_date=dt.date(2026, 6, 29),
        end_date=dt.date(2026, 7, 6),
    )
    engine.catalog.save_resource(resource)
    return resource


@pytest.fixture
def addons(engine: BookingEngine) -> list[Addon]:
    seeded = [
        Addon(addon_id="surf-lesson", name="Surf lesson", unit_price=4500, max_quantity=10),
        Addon(addon_id="airport-transfer", name="Airport transfer", unit_price=3000),
    ]
    for addon in seeded:
        engine.catalog.save_addon(addon)
    return seeded


@pytest.fixture
def promo_codes(db: DynamoDBService) -> None:
    db.put_item("promo-codes", promo_item("SUMMER10", "percentage", 10))
    db.put_item("promo-codes", promo_item("FLAT50", "fixed", 5000, min_subtotal=20000))
    db.put_item("promo-codes", promo_item("EXPIRED", "fixed", 1000, valid_until="2020-01-01T00:00:00+00:00"))


@pytest.fixture
def checkout_payload() -> dict[str, Any]:
    """Checkout request body for three nights in the ocean view room."""
    return {
        "items": [
            {
                "resource_id": "room-ocean-view",
                "quantity": 1,
                "check_in": STAY_START.isoformat(),
                "check_out": STAY_END.isoformat(),
            }
        ],
        "participants": 2,
        "customer": {
            "email": "ana.silva@example.com",
            "first_name": "Ana",
            "last_name": "Silva",
            "phone": "+351912345678",
        },
        "success_url": "https://example.com/booking/success?session_id={CHECKOUT_SESSION_ID}",
        "cancel_url": "https://example.com/booking/cancel",
    }


# === Webhook Fixtures ===


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for ``payload``."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def webhook_event() -> Callable[..., tuple[bytes, str]]:
    """Factory for signed webhook deliveries.

    Usage:
        payload, signature = webhook_event("payment_intent.succeeded", {...})
    """
    counter = itertools.count(1)

    def build(
        event_type: str,
        obj: dict[str, Any],
        event_id: str | None = None,
    ) -> tuple[bytes, str]:
        body = json.dumps(
            {
                "id": event_id or f"evt_test_{next(counter):04d}",
                "object": "event",
                "type": event_type,
                "created": int(time.time()),
                "livemode": False,
                "data": {"object": obj},
            }
        )
        return body.encode(), sign_payload(body)

    return build
