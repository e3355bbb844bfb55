"""
Confirmation page extraction.

Four independent cascades (order number, tracking URL, estimated delivery,
total) over the page text and a few class-hinted elements. Every field is
optional; a confirmation page we cannot read never fails an order that was
placed.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, Optional
from urllib.parse import urlparse

from checkout_engine.browser.constants import (
    CONFIRMATION_PHRASES,
    DELIVERY_PROVIDER_KEYWORDS,
    PLAUSIBLE_TOTAL_RANGE,
)
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.scripts import CONFIRMATION_HINTS, ConfirmationHints, ConfirmationLink
from checkout_engine.models import ConfirmationData
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

ORDER_NUMBER_PATTERNS = (
    re.compile(r"order\s*(?:number|no\.?)?\s*(?:is\s+)?#?\s*:?\s*([A-Z0-9-]+)", re.IGNORECASE),
    re.compile(r"confirmation\s*(?:number|code)?\s*#?\s*:?\s*([A-Z0-9-]+)", re.IGNORECASE),
    re.compile(r"reference\s*#?\s*:?\s*([A-Z0-9-]+)", re.IGNORECASE),
    re.compile(r"#([A-Z0-9-]{4,})", re.IGNORECASE),
)
_HINTED_NUMBER = re.compile(r"([A-Z0-9-]{4,})", re.IGNORECASE)

_ETA_VALUE = r"(\d{1,2}:\d{2}\s*(?:am|pm)?|\d{1,3}\s*-?\s*\d{0,3}\s*(?:min|minutes?))"
ETA_PATTERNS = (
    re.compile(r"(?:ready|arrive|arriving|delivery|pickup)\s*(?:by|at|in)?\s*:?\s*" + _ETA_VALUE, re.IGNORECASE),
    re.compile(r"(?:eta|estimated)\s*:?\s*" + _ETA_VALUE, re.IGNORECASE),
    re.compile(r"(\d{1,2}:\d{2}\s*(?:am|pm))", re.IGNORECASE),
    re.compile(r"(\d{1,3}\s*-\s*\d{1,3}\s*(?:min|minutes?))", re.IGNORECASE),
)

_AMOUNT = r"\$?\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"
TOTAL_PATTERNS = (
    re.compile(r"\btotal\b\s*:?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"\bamount\b\s*:?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"\bcharged\b\s*:?\s*" + _AMOUNT, re.IGNORECASE),
)
_ONCLICK_URL = re.compile(r"https?://[^\s'\"]+")


def _has_digit(value: str) -> bool:
    return any(ch.isdigit() for ch in value)


def extract_order_number(text: str, hinted_texts: Iterable[str] = ()) -> Optional[str]:
    """Labeled number in the page text, then class-hinted elements. Must contain a digit."""
    for pattern in ORDER_NUMBER_PATTERNS:
        for match in pattern.finditer(text or ""):
            value = match.group(1).strip("-")
            if value and _has_digit(value):
                return value
    for hinted in hinted_texts:
        for match in _HINTED_NUMBER.finditer(hinted):
            if _has_digit(match.group(1)):
                return match.group(1)
    return None


def extract_tracking_url(links: Iterable[ConfirmationLink], origin: Optional[str] = None) -> Optional[str]:
    """First link whose href or text names a tracking/delivery keyword; onclick URLs as a fallback."""
    links = list(links)
    for link in links:
        href = (link.get("href") or "").strip()
        haystack = f"{href} {link.get('text') or ''}".lower()
        if not href or not any(k in haystack for k in DELIVERY_PROVIDER_KEYWORDS):
            continue
        if href.startswith("http"):
            return href
        if href.startswith("/") and origin:
            return origin.rstrip("/") + href
    for link in links:
        text = (link.get("text") or "").lower()
        if "track" in text or "status" in text:
            match = _ONCLICK_URL.search(link.get("onclick") or "")
            if match:
                return match.group(0)
    return None


def extract_estimated_delivery(text: str, eta_texts: Iterable[str] = ()) -> Optional[str]:
    for pattern in ETA_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(1).strip()
    for eta in eta_texts:
        if eta.strip():
            return eta.strip()[:80]
    return None


def plausible_total(amount: float) -> bool:
    low, high = PLAUSIBLE_TOTAL_RANGE
    return low < amount < high


def extract_order_total(text: str) -> Optional[float]:
    """First total/amount/charged figure with 0 < total < 1000."""
    for pattern in TOTAL_PATTERNS:
        for match in pattern.finditer(text or ""):
            try:
                amount = float(match.group(1).replace(",", ""))
            except ValueError:
                continue
            if plausible_total(amount):
                return amount
    return None


def extract_confirmation(
    text: str,
    hints: Optional[ConfirmationHints] = None,
    *,
    origin: Optional[str] = None,
) -> ConfirmationData:
    hints = hints or {"orderNumberTexts": [], "etaTexts": [], "links": []}
    return ConfirmationData(
        confirmation_number=extract_order_number(text, hints.get("orderNumberTexts") or []),
        tracking_url=extract_tracking_url(hints.get("links") or [], origin),
        estimated_delivery=extract_estimated_delivery(text, hints.get("etaTexts") or []),
        order_total=extract_order_total(text),
    )


async def scrape_confirmation(driver: PageDriver, ctx: "RunContext") -> ConfirmationData:
    """Wait (bounded) for a confirmation heuristic, then extract what is there."""
    phrase = re.compile("|".join(re.escape(p) for p in CONFIRMATION_PHRASES), re.IGNORECASE)
    found = await driver.find_by_text(phrase, timeout_ms=ctx.timings.confirmation_timeout_ms)
    if found is None:
        logger.warning("confirmation.page_not_detected", url=driver.url)
    await ctx.sleep(ctx.timings.prompt_settle_ms)

    try:
        text = await driver.body_text()
    except Exception as e:
        logger.warning("confirmation.text_failed", error=str(e)[:200])
        text = ""
    try:
        hints = await driver.evaluate(CONFIRMATION_HINTS)
    except Exception:
        hints = None

    parsed = urlparse(driver.url or "")
    origin = f"{parsed.scheme}://{parsed.netloc}" if parsed.scheme and parsed.netloc else None
    confirmation = extract_confirmation(text, hints, origin=origin)
    logger.info(
        "confirmation.scraped",
        confirmation_number=confirmation.confirmation_number,
        has_tracking_url=confirmation.tracking_url is not None,
        estimated_delivery=confirmation.estimated_delivery,
        order_total=confirmation.order_total,
    )
    return confirmation
