"""
Pytest configuration and fixtures for API tests.

The API has no database; order runs and the RQ queue are replaced per test
through dependency overrides and patches.
"""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app


@pytest.fixture
def app():
    """Create a fresh FastAPI app for each test."""
    return create_app()


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """FastAPI test client; dependency overrides are cleared afterwards."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def order_payload() -> dict:
    """A minimal dry-run pickup order in the camelCase wire format."""
    return {
        "restaurantUrl": "https://www.toasttab.com/local/order/sample-cafe",
        "items": [{"name": "Cheeseburger", "quantity": 1}],
        "customer": {
            "firstName": "Test",
            "lastName": "Customer",
            "email": "test@example.com",
            "phone": "(555) 010-0199",
        },
        "payment": {
            "cardNumber": "4111111111111111",
            "expiry": "12/30",
            "cvv": "123",
            "zip": "10001",
        },
        "orderType": "pickup",
        "dryRun": True,
    }
