"""
Item resolution: open a named menu item across heterogeneous DOM shapes.

First an ordered cascade of structural selectors scoped to an exact-text
match; on the first visible hit we click and wait (bounded) for an add
control to attach. If the cascade finds nothing usable, a full-DOM scan
normalizes candidate text and substring-matches the target, preferring a
detail-page anchor (navigate to it) over a generic clickable container.
"""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from checkout_engine.browser.constants import ADD_CONTROL_SELECTOR, ITEM_CASCADE
from checkout_engine.browser.driver import PageDriver, click_with_fallback
from checkout_engine.browser.scripts import ITEM_SCAN, ItemCandidate, ScanParams, oa_selector
from checkout_engine.errors import ResolutionFailure
from checkout_engine.models import RunStage
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

ITEM_SCAN_LIMIT = 600
_PUNCTUATION = re.compile(f"[{re.escape(string.punctuation)}]")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class ItemOpenResult:
    strategy: str
    add_control_attached: bool
    attempted: list[str] = field(default_factory=list)


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    text = _PUNCTUATION.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def _is_detail_href(href: Optional[str]) -> bool:
    if not href:
        return False
    lowered = href.strip().lower()
    return not (lowered.startswith("javascript:") or lowered.endswith("#") or lowered == "#")


def rank_item_candidates(candidates: list[ItemCandidate], name: str) -> list[ItemCandidate]:
    """
    Candidates whose normalized text contains the normalized target, best first.

    Detail-page anchors come before generic containers; within each tier the
    shortest text (the most specific element) wins.
    """
    target = normalize_text(name)
    if not target:
        return []
    matches = [c for c in candidates if target in normalize_text(c.get("text", ""))]
    return sorted(
        matches,
        key=lambda c: (
            0 if _is_detail_href(c.get("href")) else 1,
            len(normalize_text(c.get("text", ""))),
        ),
    )


async def _wait_for_add_control(driver: PageDriver, ctx: "RunContext") -> bool:
    return await driver.wait_for_attached(ADD_CONTROL_SELECTOR, timeout_ms=ctx.timings.control_wait_ms)


async def open_item(driver: PageDriver, name: str, ctx: "RunContext") -> ItemOpenResult:
    """
    Open the item's detail view (modal or page).

    Raises ResolutionFailure carrying every attempted strategy when both the
    cascade and the full-DOM scan fail.
    """
    attempted: list[str] = []

    for label, selector in ITEM_CASCADE:
        ctx.check_cancelled()
        element = await driver.find_by_text(
            name, selector=selector, exact=True, timeout_ms=ctx.timings.short_wait_ms
        )
        if element is None:
            attempted.append(f"{label}:not_found")
            continue
        try:
            await click_with_fallback(element)
        except Exception as e:
            attempted.append(f"{label}:click_failed")
            logger.debug("item.click_failed", item=name, strategy=label, error=str(e)[:200])
            continue
        if await _wait_for_add_control(driver, ctx):
            logger.info("item.opened", item=name, strategy=label)
            return ItemOpenResult(strategy=label, add_control_attached=True, attempted=attempted)
        attempted.append(f"{label}:no_add_control")

    params: ScanParams = {"limit": ITEM_SCAN_LIMIT}
    try:
        candidates = await driver.evaluate(ITEM_SCAN, params) or []
    except Exception as e:
        logger.warning("item.scan_failed", item=name, error=str(e)[:200])
        candidates = []
    ranked = rank_item_candidates(candidates, name)
    attempted.append(f"dom_scan:{len(ranked)}_matches")

    for candidate in ranked[:3]:
        href = candidate.get("href")
        try:
            if _is_detail_href(href):
                await driver.goto(href, timeout_ms=ctx.timings.nav_timeout_ms)  # type: ignore[arg-type]
                strategy = "dom_scan:detail_anchor"
            else:
                element = await driver.find(oa_selector(candidate["id"]), timeout_ms=ctx.timings.short_wait_ms)
                if element is None:
                    continue
                await click_with_fallback(element)
                strategy = "dom_scan:container"
        except Exception as e:
            logger.debug("item.scan_candidate_failed", item=name, error=str(e)[:200])
            continue
        await ctx.sleep(ctx.timings.prompt_settle_ms)
        if await _wait_for_add_control(driver, ctx):
            logger.info("item.opened", item=name, strategy=strategy)
            return ItemOpenResult(strategy=strategy, add_control_attached=True, attempted=attempted)
        attempted.append(f"{strategy}:no_add_control")

    logger.warning("item.not_found", item=name, attempted=attempted)
    raise ResolutionFailure(
        f"Menu item not found: {name}",
        stage=RunStage.ADD_TO_CART,
        attempted=attempted,
        diagnostics={"item": name, "url": driver.url},
    )
