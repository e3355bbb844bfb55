"""
Cart state tracking: verify that an add actually changed the cart.

A click that "worked" proves nothing on these sites, so adds are verified by
comparing cart snapshots taken before and after. Counts are preferred; once a
cart is non-empty many sites stop rendering the count and only show a
checkout-intent control, which is why has_advanced has three tiers.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Iterable, Optional

from checkout_engine.browser.constants import CART_CTA_PHRASES, CART_TRIGGER_SELECTORS
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.scripts import CART_SNAPSHOT, CartSnapshotParams, CartTrigger
from checkout_engine.models import CartState
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

_EXACT_COUNT = re.compile(r"^\s*\(?(\d{1,3})\)?\s*$")
_LABELED_COUNT = re.compile(r"\b(?:cart|bag|order)\b\D{0,12}?(\d{1,3})\b|(\d{1,3})\s+items?\b", re.IGNORECASE)


def parse_cart_count(triggers: Iterable[CartTrigger]) -> Optional[int]:
    """
    Exact numeric badge first, then a "cart N" style label or text.

    Returns None when no trigger exposes a count.
    """
    triggers = list(triggers)
    for trigger in triggers:
        for raw in (trigger.get("badge"), trigger.get("text")):
            match = _EXACT_COUNT.match(raw or "")
            if match:
                return int(match.group(1))
    for trigger in triggers:
        for raw in (trigger.get("label"), trigger.get("text")):
            match = _LABELED_COUNT.search(raw or "")
            if match:
                return int(match.group(1) or match.group(2))
    return None


def has_advanced(before: CartState, after: CartState) -> bool:
    """
    True only on a count increase or a CTA appearing.

    - both counts known and after > before
    - before was 0, after count unknown, and a CTA is now present
    - no CTA before and one now
    """
    if before.count is not None and after.count is not None:
        if after.count > before.count:
            return True
    elif before.count == 0 and after.count is None and after.has_action_cta:
        return True
    return not before.has_action_cta and after.has_action_cta


async def snapshot(driver: PageDriver) -> CartState:
    params: CartSnapshotParams = {
        "triggerSelector": CART_TRIGGER_SELECTORS,
        "ctaPhrases": list(CART_CTA_PHRASES),
    }
    try:
        raw = await driver.evaluate(CART_SNAPSHOT, params) or {}
    except Exception as e:
        logger.warning("cart.snapshot_failed", error=str(e)[:200])
        raw = {}
    return CartState(
        count=parse_cart_count(raw.get("triggers") or []),
        has_action_cta=bool(raw.get("ctaTexts")),
    )


async def wait_for_advance(
    driver: PageDriver,
    before: CartState,
    ctx: "RunContext",
    timeout_ms: Optional[int] = None,
) -> tuple[bool, CartState]:
    """
    Poll until the cart advances past `before` or the timeout passes.

    Always returns the last observed state; the caller decides pass/fail.
    """
    timeout_ms = ctx.timings.cart_advance_timeout_ms if timeout_ms is None else timeout_ms
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        after = await snapshot(driver)
        if has_advanced(before, after):
            logger.info("cart.advanced", before=before.count, after=after.count, cta=after.has_action_cta)
            return True, after
        if time.monotonic() >= deadline:
            logger.info("cart.not_advanced", before=before.count, after=after.count, cta=after.has_action_cta)
            return False, after
        await ctx.sleep(ctx.timings.cart_poll_ms)
