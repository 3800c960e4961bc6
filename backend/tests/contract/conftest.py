"""Fixtures for HTTP contract tests.

The app's engine dependency is overridden with the moto-backed engine
from the top-level conftest, so routes run against real services.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from booking_api.dependencies import get_engine
from booking_api.main import app
from booking_engine.engine import BookingEngine


@pytest.fixture
def client(engine: BookingEngine) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def lenient_client(engine: BookingEngine) -> Generator[TestClient, None, None]:
    """Client that returns 500 responses instead of re-raising server errors."""
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
