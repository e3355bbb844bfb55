"""
Order placement: one OrderRequest in, one terminal OrderResult out.

Owns the full order flow; the browser session comes from a session factory
so callers (API, CLI, tests) decide how browsers are launched.

Stage-local failures are raised as EngineError subclasses inside the flow and
converted into a failed OrderResult here, annotated with the stage they
happened in. Anything unclassified becomes a failed result carrying the raw
message and the current stage. Only BrowserLaunchError propagates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncContextManager, Callable, Optional, Union

from checkout_engine.artifacts import capture_checkpoint
from checkout_engine.browser.cart_state import snapshot as cart_snapshot
from checkout_engine.browser.constants import ADD_CONTROL_SELECTOR, QUANTITY_INCREMENT_SELECTOR, Timings
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.item_resolution import open_item
from checkout_engine.browser.modifiers import add_to_cart, apply_requested_modifiers, resolve_required_groups
from checkout_engine.browser.navigation_retry import navigate_with_retry
from checkout_engine.browser.prompts import dismiss_overlays, resolve_prompts
from checkout_engine.browser.session import session_factory_from_config
from checkout_engine.checkout_flow import (
    CHECKOUT_CONTROLS,
    bypass_login_wall,
    confirm_delayed_order,
    detect_delivery_unavailable,
    detect_login_wall,
    ensure_checkout_access,
    enter_delivery_address,
    fill_customer_info,
    proceed_to_checkout,
    select_fulfillment,
    submit_order,
)
from checkout_engine.confirmation import scrape_confirmation
from checkout_engine.context import RunContext
from checkout_engine.errors import (
    BotBlockDetected,
    BrowserLaunchError,
    EngineError,
    PaymentDeclined,
    ResolutionFailure,
    get_user_safe_error_summary,
)
from checkout_engine.models import OrderItem, OrderRequest, OrderResult, RunStage
from checkout_engine.payment import detect_decline, fill_payment, inspect_payment_surface
from checkout_engine.storage import normalize_domain
from checkout_engine.telemetry import TelemetryReporter
from shared.config import AppConfig, get_config
from shared.logging import bind_request_context, get_logger

logger = get_logger(__name__)

DRY_RUN_SUCCESS_MESSAGE = "Dry run successful - order reached payment stage and test card was declined"
DRY_RUN_NOT_DECLINED_MESSAGE = "Dry run ended without the expected test card decline"
ORDER_PLACED_MESSAGE = "Order placed"


SessionFactory = Callable[[str], AsyncContextManager[Any]]


async def _set_quantity(driver: PageDriver, quantity: int, ctx: RunContext) -> int:
    """Click the increment control quantity-1 times; returns the quantity reached."""
    reached = 1
    for _ in range(quantity - 1):
        control = await driver.find(QUANTITY_INCREMENT_SELECTOR, timeout_ms=ctx.timings.short_wait_ms)
        if control is None:
            logger.warning("item.quantity_control_missing", wanted=quantity, reached=reached)
            break
        await control.click()
        reached += 1
        await ctx.sleep(ctx.timings.prompt_settle_ms // 4)
    return reached


async def _add_item(driver: PageDriver, item: OrderItem, ctx: RunContext) -> None:
    before = await cart_snapshot(driver)
    opened = await open_item(driver, item.name, ctx)
    ctx.step("item_opened", item=item.name, strategy=opened.strategy)

    if item.modifiers:
        unmatched = await apply_requested_modifiers(driver, item.modifiers, ctx)
        if unmatched:
            ctx.step("modifiers_unmatched", item=item.name, modifiers=unmatched)
    unresolved = await resolve_required_groups(driver, ctx)
    if unresolved:
        logger.warning("modifier.required_unresolved", item=item.name, groups=[g.get("header") for g in unresolved])

    if item.quantity > 1:
        await _set_quantity(driver, item.quantity, ctx)

    added = await add_to_cart(driver, ctx, item_name=item.name, before=before)
    ctx.step("item_added", item=item.name, strategy=added.strategy, verified=added.verified)

    if await driver.find(ADD_CONTROL_SELECTOR, timeout_ms=ctx.timings.short_wait_ms // 3 or 1) is not None:
        await driver.press("Escape")
    await resolve_prompts(driver, ctx)


async def _run_order(driver: PageDriver, request: OrderRequest, ctx: RunContext) -> OrderResult:
    ctx.advance(RunStage.PAGE_LOAD)
    nav = await navigate_with_retry(driver, request.restaurant_url, ctx=ctx, retry_on_block=True)
    if nav.blocked:
        raise BotBlockDetected(nav.signal, stage=RunStage.PAGE_LOAD)
    ctx.step("page_loaded", status=nav.status, attempts=nav.attempts)
    await capture_checkpoint(driver, ctx, "initial")
    await dismiss_overlays(driver, ctx)
    await resolve_prompts(driver, ctx)
    await capture_checkpoint(driver, ctx, "menu")

    ctx.advance(RunStage.ADD_TO_CART)
    for item in request.items:
        await _add_item(driver, item, ctx)
    await capture_checkpoint(driver, ctx, "add_to_cart")

    ctx.advance(RunStage.CHECKOUT)
    if not await proceed_to_checkout(driver, ctx):
        raise ResolutionFailure(
            "Checkout button not found",
            stage=RunStage.CHECKOUT,
            attempted=[c.label for c in CHECKOUT_CONTROLS],
            diagnostics={"url": driver.url},
        )
    await ensure_checkout_access(driver, ctx)
    await capture_checkpoint(driver, ctx, "checkout")

    ctx.advance(RunStage.DELIVERY)
    await select_fulfillment(driver, request.order_type, ctx)
    if request.order_type == "delivery" and request.delivery_address is not None:
        address = request.delivery_address
        entry = await enter_delivery_address(driver, address.one_line(), ctx, apt=address.apt)
        if not entry.filled:
            raise ResolutionFailure("Delivery address field not found", stage=RunStage.DELIVERY)
        if detect_delivery_unavailable(await driver.body_text()):
            raise ResolutionFailure(
                "Address is outside the delivery area",
                stage=RunStage.DELIVERY,
                diagnostics={"address": address.one_line()},
            )

    ctx.advance(RunStage.CUSTOMER_INFO)
    await fill_customer_info(driver, request.customer, ctx)
    if detect_login_wall(await driver.body_text()).guest_option:
        await bypass_login_wall(driver, ctx)

    ctx.advance(RunStage.PAYMENT)
    surface = await inspect_payment_surface(driver)
    await fill_payment(driver, surface, request.payment, ctx, dry_run=request.dry_run)
    await capture_checkpoint(driver, ctx, "payment")

    ctx.advance(RunStage.SUBMIT)
    await submit_order(driver, ctx)
    await confirm_delayed_order(driver, ctx)
    await ctx.sleep(ctx.timings.settle_ms)

    if detect_decline(await driver.body_text()):
        if not request.dry_run:
            raise PaymentDeclined()
        ctx.advance(RunStage.COMPLETE)
        ctx.step("dry_run_declined")
        logger.info("order.dry_run_complete")
        return OrderResult(
            success=True,
            message=DRY_RUN_SUCCESS_MESSAGE,
            stage=RunStage.COMPLETE,
            screenshots=list(ctx.screenshots),
        )
    if request.dry_run:
        logger.error("order.dry_run_not_declined", url=driver.url)
        return OrderResult(
            success=False,
            message=DRY_RUN_NOT_DECLINED_MESSAGE,
            stage=RunStage.SUBMIT,
            screenshots=list(ctx.screenshots),
        )

    ctx.advance(RunStage.COMPLETE)
    confirmation = await scrape_confirmation(driver, ctx)
    await capture_checkpoint(driver, ctx, "confirmation")
    if (
        request.order_total is not None
        and confirmation.order_total is not None
        and abs(request.order_total - confirmation.order_total) > 0.01
    ):
        logger.warning(
            "order.total_mismatch",
            expected_total=request.order_total,
            scraped_total=confirmation.order_total,
        )
    return OrderResult(
        success=True,
        message=ORDER_PLACED_MESSAGE,
        order_id=confirmation.confirmation_number,
        stage=RunStage.COMPLETE,
        confirmation=confirmation,
        screenshots=list(ctx.screenshots),
    )


async def place_order(
    request: OrderRequest,
    *,
    config: Optional[AppConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    screenshot_dir: Optional[Union[str, Path]] = None,
    ctx: Optional[RunContext] = None,
    reporter: Optional[TelemetryReporter] = None,
) -> OrderResult:
    """
    Place (or rehearse, with dry_run) one order.

    Always returns an OrderResult; raises BrowserLaunchError only when no
    browser could be started.
    """
    config = config or get_config()
    domain = normalize_domain(request.restaurant_url)
    if ctx is None:
        ctx = RunContext(
            "order",
            domain=domain,
            timings=Timings.from_config(config),
            screenshot_dir=Path(screenshot_dir) if screenshot_dir else None,
            reporter=reporter,
        )
    bind_request_context(run_id=ctx.run_id, run_type="order", domain=domain, stage=ctx.stage.value)
    factory = session_factory or session_factory_from_config(config)
    logger.info(
        "order.started",
        url=request.restaurant_url,
        items=len(request.items),
        order_type=request.order_type,
        dry_run=request.dry_run,
    )

    result: Optional[OrderResult] = None
    fail_reason: Optional[str] = None
    try:
        async with factory(request.restaurant_url) as session:
            ctx.proxy_used = bool(session.proxy_active)
            ctx.metadata["proxy_degraded"] = bool(session.proxy_degraded)
            try:
                result = await _run_order(session.driver, request, ctx)
            except Exception:
                await capture_checkpoint(session.driver, ctx, "failure")
                raise
    except EngineError as e:
        stage = e.stage or ctx.stage
        fail_reason = e.summary
        details = dict(getattr(e, "diagnostics", {}) or {})
        logger.error(
            "order.failed",
            stage=stage.value,
            error=e.message,
            error_type=type(e).__name__,
            attempted=getattr(e, "attempted", None),
            diagnostics=details or None,
        )
        result = OrderResult(success=False, message=e.message, stage=stage, screenshots=list(ctx.screenshots))
    except BrowserLaunchError:
        fail_reason = "Browser unavailable"
        raise
    except Exception as e:
        fail_reason = get_user_safe_error_summary(e)
        logger.error("order.unclassified_error", stage=ctx.stage.value, error=str(e), error_type=type(e).__name__)
        result = OrderResult(
            success=False,
            message=str(e) or type(e).__name__,
            stage=ctx.stage,
            screenshots=list(ctx.screenshots),
        )
    finally:
        if result is not None and not result.success and fail_reason is None:
            fail_reason = result.message
        ctx.finish(success=bool(result and result.success), fail_reason=fail_reason)

    logger.info("order.finished", success=result.success, stage=result.stage.value, elapsed_ms=ctx.elapsed_ms)
    return result
