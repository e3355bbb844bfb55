"""
Menu extraction for probes: price-bearing cards in the DOM, plus whether the
page pulled its menu from a data endpoint we could call directly.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urlparse

from checkout_engine.browser.constants import (
    MENU_CONSISTENT_MIN_ITEMS,
    MENU_ENDPOINT_HINTS,
    MENU_ITEM_SCAN_LIMIT,
)
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.scripts import MENU_SCAN, MenuEntry, ScanParams
from checkout_engine.models import MenuItemSample, MenuScrapeReport
from shared.logging import get_logger

logger = get_logger(__name__)

MENU_SAMPLE_SIZE = 10
_PRICE = re.compile(r"(\d+(?:\.\d{1,2})?)")
_STATIC_ASSET = re.compile(r"\.(js|css|png|jpe?g|gif|svg|webp|woff2?|ico)(\?|$)", re.IGNORECASE)


def parse_price(text: Optional[str]) -> Optional[float]:
    match = _PRICE.search(text or "")
    return float(match.group(1)) if match else None


def has_menu_endpoint(response_urls: Iterable[str]) -> bool:
    """A non-asset response whose path looks like a menu/catalog API."""
    for url in response_urls:
        path = urlparse(url).path.lower()
        if _STATIC_ASSET.search(path):
            continue
        if any(hint in path for hint in MENU_ENDPOINT_HINTS):
            return True
    return False


def summarize_menu(entries: Iterable[MenuEntry], response_urls: Iterable[str] = ()) -> MenuScrapeReport:
    seen: set[str] = set()
    items: list[MenuItemSample] = []
    categories: list[str] = []
    for entry in entries:
        name = (entry.get("name") or "").strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        category = (entry.get("category") or "").strip() or None
        if category and category not in categories:
            categories.append(category)
        items.append(
            MenuItemSample(
                name=name,
                price=parse_price(entry.get("priceText")),
                has_image=bool(entry.get("hasImage")),
                category=category,
            )
        )
    return MenuScrapeReport(
        items_found=len(items),
        categories=categories,
        consistent=len(items) >= MENU_CONSISTENT_MIN_ITEMS,
        has_menu_endpoint=has_menu_endpoint(response_urls),
        sample=items[:MENU_SAMPLE_SIZE],
    )


async def scan_menu(driver: PageDriver) -> MenuScrapeReport:
    params: ScanParams = {"limit": MENU_ITEM_SCAN_LIMIT}
    try:
        entries = await driver.evaluate(MENU_SCAN, params) or []
    except Exception as e:
        logger.warning("menu.scan_failed", error=str(e)[:200])
        entries = []
    report = summarize_menu(entries, driver.response_urls())
    logger.info(
        "menu.scanned",
        items_found=report.items_found,
        categories=len(report.categories),
        has_menu_endpoint=report.has_menu_endpoint,
    )
    return report
