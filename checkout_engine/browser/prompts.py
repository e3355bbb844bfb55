"""
Fulfillment prompt resolution and overlay dismissal.

Ordering flows interleave an unpredictable number of scheduling and
continuation modals ("Schedule order", "ASAP", "Continue") between actions.
resolve_prompts clicks through them in a bounded loop, never touching
anything that looks like sign-in or order submission.

dismiss_overlays is best effort: cookie banners and promo dialogs are closed
when a safe button is visible, and errors never fail the run.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, Optional

from checkout_engine.browser.constants import (
    INTERACTIVE_SELECTORS,
    OVERLAY_CONTAINER_SELECTORS,
    OVERLAY_DISMISS_TEXTS,
    PROMPT_EXCLUDED_PATTERNS,
    PROMPT_KEYWORDS,
    PROMPT_MAX_ITERATIONS,
    PROMPT_MAX_TEXT_LENGTH,
)
from checkout_engine.browser.driver import PageDriver, click_with_fallback
from checkout_engine.browser.scripts import PROMPT_CANDIDATES, PromptCandidate, PromptParams, oa_selector
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

_EXCLUDED = re.compile("|".join(PROMPT_EXCLUDED_PATTERNS), re.IGNORECASE)
_KEYWORD_PATTERNS = [re.compile(rf"\b{re.escape(k)}\b", re.IGNORECASE) for k in PROMPT_KEYWORDS]


def is_prompt_text(text: str) -> bool:
    """Keyword match for continuation prompts, excluding sign-in and submit controls."""
    text = (text or "").strip()
    if not text or len(text) > PROMPT_MAX_TEXT_LENGTH or _EXCLUDED.search(text):
        return False
    return any(p.search(text) for p in _KEYWORD_PATTERNS)


def pick_prompt_candidate(
    candidates: Iterable[PromptCandidate],
    already_clicked: Optional[set[str]] = None,
) -> Optional[PromptCandidate]:
    """First visible, enabled candidate whose text is a prompt keyword."""
    already_clicked = already_clicked or set()
    for candidate in candidates:
        if not candidate.get("visible") or candidate.get("disabled"):
            continue
        text = candidate.get("text", "")
        if is_prompt_text(text) and text.lower() not in already_clicked:
            return candidate
    return None


async def resolve_prompts(driver: PageDriver, ctx: "RunContext") -> list[str]:
    """
    Click through fulfillment prompts, at most PROMPT_MAX_ITERATIONS times.

    Returns the labels clicked, in order. A label is clicked at most twice so
    a prompt that does not go away cannot eat every iteration.
    """
    clicked: list[str] = []
    params: PromptParams = {"selector": INTERACTIVE_SELECTORS, "maxLength": PROMPT_MAX_TEXT_LENGTH}

    for iteration in range(1, PROMPT_MAX_ITERATIONS + 1):
        ctx.check_cancelled()
        try:
            candidates = await driver.evaluate(PROMPT_CANDIDATES, params) or []
        except Exception as e:
            logger.warning("prompt.scan_failed", error=str(e)[:200])
            break
        repeated = {label.lower() for label in clicked if clicked.count(label) >= 2}
        candidate = pick_prompt_candidate(candidates, repeated)
        if candidate is None:
            break
        element = await driver.find(oa_selector(candidate["id"]), timeout_ms=ctx.timings.short_wait_ms)
        if element is None:
            break
        try:
            await click_with_fallback(element)
        except Exception as e:
            logger.info("prompt.click_failed", label=candidate["text"], error=str(e)[:200])
            break
        clicked.append(candidate["text"])
        logger.info("prompt.resolved", label=candidate["text"], iteration=iteration)
        await ctx.sleep(ctx.timings.prompt_settle_ms)

    return clicked


async def dismiss_overlays(driver: PageDriver, ctx: "RunContext") -> list[str]:
    """One best-effort pass over consent banners and promo dialogs."""
    dismissed: list[str] = []
    try:
        for text in OVERLAY_DISMISS_TEXTS:
            element = await driver.find_by_text(
                text,
                selector=f":is({OVERLAY_CONTAINER_SELECTORS}) :is(button, [role='button'], a)",
                exact=True,
                timeout_ms=min(ctx.timings.short_wait_ms, 500),
            )
            if element is None:
                continue
            try:
                await element.click(timeout_ms=2000)
            except Exception:
                logger.debug("overlay.click_failed", text=text)
                continue
            dismissed.append(text)
            logger.info("overlay.dismissed", text=text)
            await ctx.sleep(ctx.timings.prompt_settle_ms // 2)
    except Exception as e:
        logger.warning("overlay.pass_error", error=str(e), error_type=type(e).__name__)
    return dismissed
