"""
Bot-block classification: DOM signals first, title/body phrases as fallback.

DOM structural signals (challenge iframes, turnstile inputs, challenge
containers) have a near-zero false-positive rate and always win. Phrase
matching is a fallback and only trusts the page title: an interstitial's
title is its own, while body copy on an ordinary restaurant page can mention
"Cloudflare" or "access denied" without being a block page. A body-only
phrase is recorded as evidence but never marks the page blocked.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from checkout_engine.browser.constants import (
    BLOCK_PHRASES,
    CHALLENGE_IFRAME_HOSTS,
    CHALLENGE_MARKERS,
    WAF_HEADER_NAMES,
    WAF_HEADER_PREFIXES,
)
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.scripts import BOT_SIGNALS, BotSignalsParams
from checkout_engine.models import BlockType, BotBlockSignal
from shared.logging import get_logger

logger = get_logger(__name__)

BODY_SAMPLE_CHARS = 5000


def phrase_block_type(text: str) -> Optional[BlockType]:
    """Map the first known block phrase found in text to a block type."""
    lowered = (text or "").lower()
    for phrase, block_type in BLOCK_PHRASES.items():
        if phrase in lowered:
            return block_type  # type: ignore[return-value]
    return None


def classify_signals(
    iframe_srcs: Iterable[str],
    markers: Iterable[str],
    title: str,
    body: str,
) -> BotBlockSignal:
    """
    Pure classifier over already-collected page signals.

    Priority: challenge iframes, then DOM markers, then title phrases.
    """
    for src in iframe_srcs:
        lowered = src.lower()
        for host, block_type in CHALLENGE_IFRAME_HOSTS.items():
            if host in lowered:
                return BotBlockSignal(blocked=True, type=block_type, evidence=f"iframe:{host}")  # type: ignore[arg-type]

    for marker in markers:
        block_type = CHALLENGE_MARKERS.get(marker)
        if block_type:
            return BotBlockSignal(blocked=True, type=block_type, evidence=f"marker:{marker}")  # type: ignore[arg-type]

    title_type = phrase_block_type(title)
    if title_type:
        return BotBlockSignal(blocked=True, type=title_type, evidence="title")

    if phrase_block_type(body[:BODY_SAMPLE_CHARS]):
        return BotBlockSignal(blocked=False, type="none", evidence="body_phrase_uncorroborated")

    return BotBlockSignal.clear()


async def classify(driver: PageDriver) -> BotBlockSignal:
    """Collect DOM/title/body signals from the current page and classify them."""
    params: BotSignalsParams = {"markers": list(CHALLENGE_MARKERS)}
    try:
        raw = await driver.evaluate(BOT_SIGNALS, params) or {}
    except Exception as e:
        logger.warning("bot_detection.collect_failed", error=str(e)[:200])
        raw = {}
    try:
        title = await driver.title()
    except Exception:
        title = ""
    try:
        body = await driver.body_text()
    except Exception:
        body = ""

    signal = classify_signals(raw.get("iframeSrcs") or [], raw.get("markers") or [], title, body)
    if signal.blocked:
        logger.warning("bot_detection.blocked", block_type=signal.type, evidence=signal.evidence, url=driver.url)
    elif signal.evidence:
        logger.info("bot_detection.phrase_ignored", evidence=signal.evidence, url=driver.url)
    return signal


def pick_waf_headers(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Keep only headers that identify a CDN/WAF in front of the site."""
    picked: dict[str, str] = {}
    for name, value in (headers or {}).items():
        key = name.lower()
        if key in WAF_HEADER_NAMES or key.startswith(WAF_HEADER_PREFIXES):
            picked[key] = value
    return picked
