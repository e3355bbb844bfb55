"""
Payment surface classification and card entry.

A checkout's payment form is one of:

- standard_inputs: card fields we can fill, either native in the page or
  inside a hosted iframe we enumerated and found visible inputs in
- thirdparty_iframe: a hosted-payment iframe whose inputs we cannot reach
- wallet_only: wallet buttons (Apple Pay, Google Pay, ...) and no card fields
- none: nothing recognisable

Only standard_inputs is ever filled. Dry runs substitute a guaranteed-decline
test card, and card values are never logged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from checkout_engine.browser.constants import (
    CARD_FIELD_SELECTORS,
    HOSTED_PAYMENT_DOMAINS,
    PAYMENT_FRAME_NAME_HINTS,
    TEST_CARD_NUMBER,
)
from checkout_engine.browser.driver import PageDriver
from checkout_engine.browser.scripts import FRAME_INPUT_COUNT
from checkout_engine.errors import ResolutionFailure
from checkout_engine.models import PaymentInfo, PaymentSurfaceType, RunStage
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

_WALLET = re.compile(r"apple\s*pay|google\s*pay|g\s*pay|paypal|venmo|cash\s*app\s*pay", re.IGNORECASE)
_DECLINE = re.compile(
    r"\bdeclined?\b|card\s+(was\s+)?(declined|rejected)|payment\s+(failed|error|unsuccessful)"
    r"|unable\s+to\s+process|could\s+not\s+be\s+processed|transaction\s+failed",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FrameProbe:
    url: str
    name: str = ""
    visible_inputs: int = 0


@dataclass(frozen=True)
class PaymentSurface:
    type: PaymentSurfaceType
    fillable: bool
    frame: Optional[str] = None
    providers: list[str] = field(default_factory=list)


def provider_for_url(url: Optional[str]) -> Optional[str]:
    """Hosted-payment provider for a frame URL, by host suffix."""
    if not url:
        return None
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return None
    for domain, provider in HOSTED_PAYMENT_DOMAINS.items():
        if host == domain or host.endswith("." + domain):
            return provider
    return None


def _is_payment_frame(frame: FrameProbe) -> bool:
    if provider_for_url(frame.url):
        return True
    name = (frame.name or "").lower()
    return any(hint in name for hint in PAYMENT_FRAME_NAME_HINTS)


def classify_payment_surface(html: str, frames: Iterable[FrameProbe] = ()) -> PaymentSurface:
    """Classify the checkout's payment form from its HTML and enumerated frames."""
    soup = BeautifulSoup(html or "", "html.parser")
    frames = list(frames)

    providers: set[str] = set()
    iframe_srcs = [tag.get("src") for tag in soup.find_all("iframe") if tag.get("src")]
    for src in iframe_srcs + [f.url for f in frames]:
        provider = provider_for_url(src)
        if provider:
            providers.add(provider)
    provider_list = sorted(providers)

    for frame in frames:
        if _is_payment_frame(frame) and frame.visible_inputs > 0:
            return PaymentSurface(
                type="standard_inputs",
                fillable=True,
                frame=frame.name or frame.url,
                providers=provider_list,
            )

    if any(soup.select(selector) for selector in CARD_FIELD_SELECTORS["card_number"]):
        return PaymentSurface(type="standard_inputs", fillable=True, providers=provider_list)

    if providers or any(_is_payment_frame(f) for f in frames):
        return PaymentSurface(type="thirdparty_iframe", fillable=False, providers=provider_list)

    if _WALLET.search(soup.get_text(" ")):
        return PaymentSurface(type="wallet_only", fillable=False, providers=provider_list)

    return PaymentSurface(type="none", fillable=False, providers=provider_list)


async def probe_payment_frames(driver: PageDriver) -> list[FrameProbe]:
    """Count visible inputs inside every frame that looks like a payment frame."""
    probes: list[FrameProbe] = []
    for info in await driver.frames():
        candidate = FrameProbe(url=info.url, name=info.name)
        if not _is_payment_frame(candidate):
            continue
        frame_driver = driver.frame_driver(info.name or info.url)
        count = 0
        if frame_driver is not None:
            try:
                count = int(await frame_driver.evaluate(FRAME_INPUT_COUNT) or 0)
            except Exception as e:
                logger.info("payment.frame_unreachable", frame=info.url, error=str(e)[:200])
        probes.append(FrameProbe(url=info.url, name=info.name, visible_inputs=count))
    return probes


async def inspect_payment_surface(driver: PageDriver) -> PaymentSurface:
    surface = classify_payment_surface(await driver.content(), await probe_payment_frames(driver))
    logger.info(
        "payment.surface",
        surface_type=surface.type,
        fillable=surface.fillable,
        frame=surface.frame,
        providers=surface.providers,
    )
    return surface


async def fill_payment(
    driver: PageDriver,
    surface: PaymentSurface,
    payment: PaymentInfo,
    ctx: "RunContext",
    *,
    dry_run: bool,
) -> list[str]:
    """
    Fill card fields on a standard_inputs surface. Returns the fields filled.

    Raises ResolutionFailure when the surface is not fillable or no card
    number field can be found.
    """
    if not surface.fillable:
        raise ResolutionFailure(
            f"Payment form is not automatable ({surface.type})",
            stage=RunStage.PAYMENT,
            diagnostics={"surface": surface.type, "providers": surface.providers},
        )
    target = driver.frame_driver(surface.frame) if surface.frame else driver
    if target is None:
        raise ResolutionFailure(
            "Payment frame disappeared before it could be filled",
            stage=RunStage.PAYMENT,
            diagnostics={"frame": surface.frame},
        )

    values = {
        "card_number": TEST_CARD_NUMBER if dry_run else payment.card_number,
        "expiry": payment.expiry,
        "cvv": payment.cvv,
        "zip": payment.zip,
    }
    filled: list[str] = []
    for name, selectors in CARD_FIELD_SELECTORS.items():
        ctx.check_cancelled()
        timeout = ctx.timings.control_wait_ms if name == "card_number" else ctx.timings.short_wait_ms
        element = None
        for selector in selectors:
            element = await target.find(selector, timeout_ms=timeout)
            if element is not None:
                break
            timeout = ctx.timings.short_wait_ms
        if element is None:
            if name == "card_number":
                raise ResolutionFailure(
                    "Card number field not found",
                    stage=RunStage.PAYMENT,
                    attempted=list(selectors),
                    diagnostics={"frame": surface.frame},
                )
            logger.info("payment.field_missing", field=name)
            continue
        await element.fill(values[name])
        filled.append(name)

    logger.info("payment.filled", fields=filled, dry_run=dry_run, frame=surface.frame)
    return filled


def detect_decline(text: str) -> bool:
    return bool(_DECLINE.search(text or ""))
