"""
Route handlers for order endpoints.

POST /orders runs the order agent to completion inside the request and
returns the terminal OrderResult. Engine failures come back as a 200 with
success=false; only infrastructure failures map to HTTP errors.
"""

from __future__ import annotations

from typing import Annotated, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from checkout_engine.errors import BrowserLaunchError
from checkout_engine.models import OrderRequest, OrderResult
from checkout_engine.order_agent import place_order
from checkout_engine.storage import normalize_domain
from shared.logging import bind_request_context, get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])

OrderRunner = Callable[[OrderRequest], Awaitable[OrderResult]]


def get_order_runner() -> OrderRunner:
    """Dependency returning the coroutine that places an order."""
    return place_order


@router.post(
    "",
    response_model=OrderResult,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
    summary="Place an order on a third-party ordering page",
)
async def create_order(
    request: OrderRequest,
    runner: Annotated[OrderRunner, Depends(get_order_runner)],
) -> OrderResult:
    """
    Place an order and wait for the terminal result.

    Dry runs stop at payment with a test card; the result reports success when
    the site declines it.
    """
    bind_request_context(run_type="order", domain=normalize_domain(request.restaurant_url))
    logger.info(
        "order_requested",
        url=request.restaurant_url,
        items=len(request.items),
        order_type=request.order_type,
        dry_run=request.dry_run,
    )

    try:
        return await runner(request)
    except BrowserLaunchError as e:
        logger.error("browser_launch_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Browser could not be started. Please try again later.",
        )
