"""
Injectability probe: how far can a bot get on this ordering site, reliably?

The probe runs the non-destructive part of the order flow (load, menu,
add-to-cart, as far into checkout as reachable; never submitting) several
times in fresh browser sessions separated by a cooldown, then scores the
deepest run and the run-to-run consistency.

Scoring is a sum of fixed weights over derived signals. Signals gate
downstream ones: a verified cart needs an unblocked load, a clear checkout
needs a verified cart and no login wall, automatable payment needs a clear
checkout. Losing load, cart or checkout therefore always lands below the
bot-ready threshold.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncContextManager, Callable, Optional, Union
from urllib.parse import urlparse

from checkout_engine.artifacts import ReportWriter, capture_checkpoint
from checkout_engine.browser.cart_state import snapshot as cart_snapshot
from checkout_engine.browser.constants import PROBE_TEST_ADDRESS, Timings
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.item_resolution import open_item
from checkout_engine.browser.modifiers import add_to_cart, resolve_required_groups
from checkout_engine.browser.navigation_retry import navigate_with_retry
from checkout_engine.browser.prompts import dismiss_overlays, resolve_prompts
from checkout_engine.browser.session import session_factory_from_config
from checkout_engine.checkout_flow import (
    detect_delivery_unavailable,
    detect_login_wall,
    detect_tip_and_total,
    enter_delivery_address,
    guest_checkout_available,
    proceed_to_checkout,
    select_fulfillment,
)
from checkout_engine.context import RunContext
from checkout_engine.errors import BrowserLaunchError, EngineError, NavigationFailure, RunCancelled
from checkout_engine.menu_scan import scan_menu
from checkout_engine.models import (
    AddToCartReport,
    CheckoutReport,
    ConsistencyReport,
    MenuScrapeReport,
    PageLoadReport,
    ProbeResult,
    Recommendation,
    RunStage,
)
from checkout_engine.payment import inspect_payment_surface
from checkout_engine.storage import normalize_domain
from checkout_engine.telemetry import TelemetryReporter
from shared.config import AppConfig, get_config
from shared.logging import bind_request_context, get_logger

logger = get_logger(__name__)

WEIGHTS = {
    "unblocked_load": 15,
    "menu_extracted": 10,
    "menu_consistent": 5,
    "menu_endpoint": 5,
    "cart_verified": 15,
    "checkout_clear": 20,
    "payment_automatable": 15,
    "delivery_ok": 5,
    "consistent": 10,
}
BOT_READY_THRESHOLD = 75
INVESTIGATE_THRESHOLD = 50

SessionFactory = Callable[[str], AsyncContextManager[Any]]

_PLATFORM_HOSTS = (
    ("toasttab.com", "toast"),
    ("square.site", "square_online"),
    ("squareup.com", "square_online"),
    ("slicelife.com", "slice"),
    ("chownow.com", "chownow"),
)


def platform_hint(url: str) -> str:
    """Ordering platform guessed from the target host."""
    host = (urlparse(url if "://" in url else f"https://{url}").hostname or "").lower()
    for suffix, platform in _PLATFORM_HOSTS:
        if host == suffix or host.endswith("." + suffix):
            return platform
    return "unknown"


@dataclass
class ProbeRun:
    run_number: int
    page_load: PageLoadReport = field(default_factory=PageLoadReport)
    menu_scrape: MenuScrapeReport = field(default_factory=MenuScrapeReport)
    add_to_cart: AddToCartReport = field(default_factory=AddToCartReport)
    checkout: CheckoutReport = field(default_factory=CheckoutReport)
    screenshots: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def successful(self) -> bool:
        return self.page_load.loaded and not self.page_load.blocked

    @property
    def depth(self) -> int:
        return (2 if self.checkout.reached else 0) + (1 if self.add_to_cart.cart_verified else 0)


# --- One run ---


async def _probe_page_load(driver: PageDriver, url: str, ctx: RunContext) -> PageLoadReport:
    ctx.advance(RunStage.PAGE_LOAD)
    try:
        nav = await navigate_with_retry(driver, url, ctx=ctx)
    except NavigationFailure as e:
        return PageLoadReport(loaded=False, attempts=e.attempts, error=e.message)
    try:
        title = await driver.title()
    except Exception:
        title = None
    return PageLoadReport(
        loaded=nav.response is not None and (nav.status is None or nav.status < 400),
        blocked=nav.blocked,
        block_type=nav.signal.type,
        status=nav.status,
        title=title,
        waf_headers=nav.waf_headers,
        attempts=nav.attempts,
    )


async def _probe_add_to_cart(driver: PageDriver, menu: MenuScrapeReport, ctx: RunContext) -> AddToCartReport:
    if not menu.sample:
        return AddToCartReport(attempted=False, error="No menu items to add")
    item_name = menu.sample[0].name
    ctx.advance(RunStage.ADD_TO_CART)
    before = await cart_snapshot(driver)
    try:
        await open_item(driver, item_name, ctx)
        await resolve_required_groups(driver, ctx)
        added = await add_to_cart(driver, ctx, item_name=item_name, before=before)
    except RunCancelled:
        raise
    except EngineError as e:
        return AddToCartReport(attempted=True, item_name=item_name, error=e.message)
    await resolve_prompts(driver, ctx)
    return AddToCartReport(
        attempted=True,
        item_name=item_name,
        clicked=added.clicked,
        cart_verified=added.verified,
        strategy=added.strategy,
    )


async def _probe_delivery(driver: PageDriver, ctx: RunContext) -> tuple[bool, Optional[bool]]:
    """(delivery selector present, delivery available for the test address)."""
    selected = await select_fulfillment(driver, "delivery", ctx)
    entry = await enter_delivery_address(driver, PROBE_TEST_ADDRESS, ctx)
    if selected is None and not entry.filled:
        return False, None
    if not entry.filled:
        return True, None
    return True, not detect_delivery_unavailable(await driver.body_text())


async def _probe_checkout(driver: PageDriver, ctx: RunContext) -> CheckoutReport:
    ctx.advance(RunStage.CHECKOUT)
    if not await proceed_to_checkout(driver, ctx):
        return CheckoutReport(reached=False, error="Checkout entry not found")

    ctx.advance(RunStage.DELIVERY)
    selector_present, delivery_available = await _probe_delivery(driver, ctx)

    text = await driver.body_text()
    wall = detect_login_wall(text)
    tip_total = detect_tip_and_total(text)
    surface = await inspect_payment_surface(driver)
    return CheckoutReport(
        reached=True,
        login_required=wall.required,
        login_method=wall.method,
        guest_checkout_available=guest_checkout_available(text, wall),
        payment_surface=surface.type,
        payment_automatable=surface.fillable,
        payment_providers=surface.providers,
        tip_present=tip_total.tip_present,
        total=tip_total.total,
        delivery_selector_present=selector_present,
        delivery_available=delivery_available,
    )


async def probe_once(driver: PageDriver, url: str, ctx: RunContext, run_number: int) -> ProbeRun:
    """
    One non-destructive pass. Never submits an order and never interacts
    with a challenge page; a blocked load ends the run.
    """
    run = ProbeRun(run_number=run_number)
    try:
        run.page_load = await _probe_page_load(driver, url, ctx)
        await capture_checkpoint(driver, ctx, "initial", run_number=run_number)
        if not run.successful:
            return run

        await dismiss_overlays(driver, ctx)
        await resolve_prompts(driver, ctx)
        run.menu_scrape = await scan_menu(driver)
        await capture_checkpoint(driver, ctx, "menu", run_number=run_number)

        run.add_to_cart = await _probe_add_to_cart(driver, run.menu_scrape, ctx)
        await capture_checkpoint(driver, ctx, "add_to_cart", run_number=run_number)

        if run.add_to_cart.cart_verified:
            run.checkout = await _probe_checkout(driver, ctx)
            await capture_checkpoint(driver, ctx, "checkout", run_number=run_number)
    except RunCancelled:
        raise
    except Exception as e:
        run.error = str(e)[:300] or type(e).__name__
        logger.error("probe.run_error", run_number=run_number, stage=ctx.stage.value, error=run.error)
    finally:
        run.screenshots = list(ctx.screenshots)
    return run


# --- Aggregation and scoring ---


def aggregate_consistency(runs: list[ProbeRun]) -> ConsistencyReport:
    """A block after an earlier unblocked run counts as changed behavior."""
    notes: list[str] = []
    seen_success = False
    behavior_changed = False
    for run in runs:
        if run.page_load.blocked:
            notes.append(f"run {run.run_number}: blocked ({run.page_load.block_type})")
            if seen_success:
                behavior_changed = True
        elif not run.page_load.loaded:
            notes.append(f"run {run.run_number}: page did not load")
        if run.successful:
            seen_success = True
        if run.error:
            notes.append(f"run {run.run_number}: {run.error}")
    return ConsistencyReport(
        runs_completed=len(runs),
        runs_successful=sum(1 for r in runs if r.successful),
        behavior_changed=behavior_changed,
        notes=notes,
    )


def select_representative(runs: list[ProbeRun]) -> ProbeRun:
    """Deepest run (checkout reached 2, cart verified 1); earliest wins ties."""
    return max(runs, key=lambda r: (r.depth, r.successful, -r.run_number))


@dataclass(frozen=True)
class ProbeSignals:
    unblocked_load: bool = False
    menu_extracted: bool = False
    menu_consistent: bool = False
    menu_endpoint: bool = False
    cart_verified: bool = False
    checkout_clear: bool = False
    payment_automatable: bool = False
    delivery_ok: bool = False
    consistent: bool = False


def derive_signals(run: ProbeRun, consistency: ConsistencyReport) -> ProbeSignals:
    unblocked_load = run.page_load.loaded and not run.page_load.blocked
    cart_verified = unblocked_load and run.add_to_cart.cart_verified
    checkout_clear = cart_verified and run.checkout.reached and not run.checkout.login_required
    delivery_ok = run.checkout.reached and (
        run.checkout.delivery_available is True or not run.checkout.delivery_selector_present
    )
    return ProbeSignals(
        unblocked_load=unblocked_load,
        menu_extracted=unblocked_load and run.menu_scrape.items_found > 0,
        menu_consistent=unblocked_load and run.menu_scrape.consistent,
        menu_endpoint=unblocked_load and run.menu_scrape.has_menu_endpoint,
        cart_verified=cart_verified,
        checkout_clear=checkout_clear,
        payment_automatable=checkout_clear and run.checkout.payment_automatable,
        delivery_ok=delivery_ok,
        consistent=(
            consistency.runs_completed > 0
            and consistency.runs_successful == consistency.runs_completed
            and not consistency.behavior_changed
        ),
    )


def compute_score(signals: ProbeSignals) -> int:
    score = sum(weight for name, weight in WEIGHTS.items() if getattr(signals, name))
    return max(0, min(100, score))


def recommend(score: int) -> Recommendation:
    if score >= BOT_READY_THRESHOLD:
        return "bot-ready"
    if score >= INVESTIGATE_THRESHOLD:
        return "needs-investigation"
    return "human-ops-only"


def describe_signals(
    signals: ProbeSignals,
    run: ProbeRun,
    consistency: ConsistencyReport,
) -> tuple[list[str], list[str]]:
    """(blockers, advantages) in the order an operator would read them."""
    blockers: list[str] = []
    advantages: list[str] = []

    if run.page_load.blocked:
        blockers.append(f"Bot protection on page load ({run.page_load.block_type})")
    elif not run.page_load.loaded:
        blockers.append("Page did not load")
    else:
        advantages.append("Page loads without bot protection")

    if signals.menu_extracted:
        advantages.append(f"Menu extracted ({run.menu_scrape.items_found} items)")
    elif signals.unblocked_load:
        blockers.append("No menu items extracted")
    if signals.menu_consistent:
        advantages.append(f"Menu extraction consistent ({run.menu_scrape.items_found} items)")
    if signals.menu_endpoint:
        advantages.append("Menu data endpoint detected")

    if signals.cart_verified:
        advantages.append("Add to cart verified")
    elif signals.unblocked_load and run.add_to_cart.attempted:
        blockers.append("Add to cart could not be verified")

    if run.checkout.login_required:
        blockers.append(f"Checkout requires login ({run.checkout.login_method or 'unknown'})")
    elif signals.cart_verified and not run.checkout.reached:
        blockers.append("Checkout not reached")
    if run.checkout.guest_checkout_available:
        advantages.append("Guest checkout available")

    if signals.payment_automatable:
        advantages.append(f"Payment form automatable ({run.checkout.payment_surface})")
    elif run.checkout.payment_automatable and run.checkout.login_required:
        blockers.append(f"Payment form gated by login wall ({run.checkout.payment_surface})")
    elif run.checkout.payment_automatable:
        blockers.append(f"Payment form automatable but checkout not clear ({run.checkout.payment_surface})")
    elif run.checkout.reached:
        blockers.append(f"Payment form not automatable ({run.checkout.payment_surface})")

    if signals.delivery_ok:
        if run.checkout.delivery_available is True:
            advantages.append("Delivery available for test address")
        else:
            advantages.append("No delivery address gate at checkout")
    elif run.checkout.delivery_available is False:
        blockers.append("Delivery unavailable for test address")

    if signals.consistent:
        advantages.append(f"Consistent across {consistency.runs_completed} runs")
    elif consistency.behavior_changed:
        blockers.append("Behavior changed between runs (blocked after an unblocked run)")
    elif consistency.runs_successful < consistency.runs_completed:
        blockers.append(f"Only {consistency.runs_successful}/{consistency.runs_completed} runs loaded cleanly")

    return blockers, advantages


# --- Entry point ---


async def run_probe(
    url: str,
    *,
    runs: Optional[int] = None,
    cooldown_seconds: Optional[float] = None,
    config: Optional[AppConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    report_writer: Optional[ReportWriter] = None,
    screenshot_dir: Optional[Union[str, Path]] = None,
    reporter: Optional[TelemetryReporter] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> ProbeResult:
    """
    Probe a target `runs` times and score it.

    Each run gets its own browser session and RunContext (and telemetry
    record). Raises BrowserLaunchError only when no browser could start.
    Setting cancel_event stops the current run or cooldown with RunCancelled.
    """
    config = config or get_config()
    runs = runs or config.probe_runs
    cooldown = config.probe_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
    factory = session_factory or session_factory_from_config(config)
    timings = Timings.from_config(config)
    domain = normalize_domain(url)
    probe_id = uuid.uuid4().hex[:12]

    logger.info("probe.started", url=url, runs=runs, cooldown_seconds=cooldown, probe_id=probe_id)
    results: list[ProbeRun] = []
    for run_number in range(1, runs + 1):
        ctx = RunContext(
            "probe",
            run_id=f"{probe_id}-{run_number}",
            domain=domain,
            timings=timings,
            screenshot_dir=Path(screenshot_dir) if screenshot_dir else None,
            reporter=reporter,
            cancel_event=cancel_event,
        )
        ctx.metadata["run_number"] = run_number
        bind_request_context(run_id=ctx.run_id, run_type="probe", domain=domain, stage=ctx.stage.value)

        run: Optional[ProbeRun] = None
        fail_reason: Optional[str] = None
        try:
            ctx.check_cancelled()
            async with factory(url) as session:
                ctx.proxy_used = bool(session.proxy_active)
                ctx.metadata["proxy_degraded"] = bool(session.proxy_degraded)
                run = await probe_once(session.driver, url, ctx, run_number)
        except BrowserLaunchError:
            fail_reason = "Browser unavailable"
            raise
        except RunCancelled:
            fail_reason = "Run cancelled"
            raise
        except Exception as e:
            logger.error("probe.session_error", run_number=run_number, error=str(e), error_type=type(e).__name__)
            run = ProbeRun(run_number=run_number, error=str(e)[:300] or type(e).__name__)
        finally:
            if run is None:
                fail_reason = fail_reason or "Run cancelled"
            elif not run.successful:
                fail_reason = run.page_load.error or run.error
            ctx.finish(success=bool(run and run.successful), fail_reason=fail_reason)

        logger.info(
            "probe.run_finished",
            run_number=run_number,
            loaded=run.page_load.loaded,
            blocked=run.page_load.blocked,
            cart_verified=run.add_to_cart.cart_verified,
            checkout_reached=run.checkout.reached,
        )
        results.append(run)
        if run_number < runs and cooldown > 0:
            try:
                await ctx.sleep(int(cooldown * 1000))
            except RunCancelled:
                logger.warning("probe.cancelled", run_number=run_number, stage="cooldown")
                raise

    consistency = aggregate_consistency(results)
    representative = select_representative(results)
    signals = derive_signals(representative, consistency)
    score = compute_score(signals)
    blockers, advantages = describe_signals(signals, representative, consistency)

    result = ProbeResult(
        target=url,
        platform=platform_hint(url),
        page_load=representative.page_load,
        menu_scrape=representative.menu_scrape,
        add_to_cart=representative.add_to_cart,
        checkout=representative.checkout,
        consistency=consistency,
        injectability_score=score,
        recommendation=recommend(score),
        blockers=blockers,
        advantages=advantages,
        screenshots=[shot for r in results for shot in r.screenshots],
    )
    logger.info(
        "probe.scored",
        score=score,
        recommendation=result.recommendation,
        representative_run=representative.run_number,
        runs_successful=consistency.runs_successful,
        behavior_changed=consistency.behavior_changed,
    )
    if report_writer is not None:
        try:
            report_writer.write(result)
        except OSError as e:
            logger.error("probe_report_write_failed", error=str(e), error_type=type(e).__name__)
    return result
