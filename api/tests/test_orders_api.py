"""
Tests for order endpoints.

The order runner is swapped out through FastAPI dependency overrides so no
browser is started.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

from fastapi import status

from api.routes.orders import get_order_runner
from checkout_engine.errors import BrowserLaunchError
from checkout_engine.models import OrderResult, RunStage


def test_health_check(client):
    """Test that GET /health reports ok."""
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


def test_create_order_returns_result(app, client, order_payload):
    """Test that POST /orders awaits the runner and returns the camelCase result."""
    runner = AsyncMock(
        return_value=OrderResult(
            success=True,
            message="Dry run successful - order reached payment stage and test card was declined",
            stage=RunStage.COMPLETE,
            screenshots=["toasttab-com-local-run-1-initial.png"],
        )
    )
    app.dependency_overrides[get_order_runner] = lambda: runner

    response = client.post("/orders", json=order_payload)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is True
    assert data["stage"] == "complete"
    assert data["orderId"] is None
    assert "dry run" in data["message"].lower()

    runner.assert_awaited_once()
    request = runner.await_args.args[0]
    assert request.restaurant_url == order_payload["restaurantUrl"]
    assert request.dry_run is True
    assert request.items[0].name == "Cheeseburger"


def test_create_order_failure_is_not_http_error(app, client, order_payload):
    """Test that an engine failure is a 200 with success=false and the failing stage."""
    runner = AsyncMock(
        return_value=OrderResult(
            success=False,
            message="Bot protection blocked the page (cloudflare_challenge)",
            stage=RunStage.PAGE_LOAD,
        )
    )
    app.dependency_overrides[get_order_runner] = lambda: runner

    response = client.post("/orders", json=order_payload)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is False
    assert data["stage"] == "page_load"


def test_create_order_browser_launch_failure(app, client, order_payload):
    """Test that a browser that cannot start maps to 503."""
    runner = AsyncMock(side_effect=BrowserLaunchError("chromium missing"))
    app.dependency_overrides[get_order_runner] = lambda: runner

    response = client.post("/orders", json=order_payload)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


def test_create_order_rejects_delivery_without_address(app, client, order_payload):
    """Test that delivery orders need a delivery address."""
    runner = AsyncMock()
    app.dependency_overrides[get_order_runner] = lambda: runner
    order_payload["orderType"] = "delivery"

    response = client.post("/orders", json=order_payload)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    runner.assert_not_awaited()


def test_create_order_rejects_empty_items(app, client, order_payload):
    """Test that an order with no items is rejected before any run."""
    runner = AsyncMock()
    app.dependency_overrides[get_order_runner] = lambda: runner
    order_payload["items"] = []

    response = client.post("/orders", json=order_payload)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    runner.assert_not_awaited()
