"""
Checkout traversal: cart review through order submission.

cart_review -> checkout_entry -> fulfillment_selection -> address_entry
(delivery only) -> customer_info -> payment -> submit -> confirmation.

Each transition tries an ordered list of ControlQuery strategies for the
control it expects, clicks the first that resolves, then waits the settle
delay. Text heuristics (login wall, tip/total, delivery area) are pure
functions over page text so probes and orders share them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Pattern, Sequence

from checkout_engine.browser.constants import (
    ADDRESS_INPUT_SELECTORS,
    APT_INPUT_SELECTORS,
    AUTOCOMPLETE_SUGGESTION_SELECTOR,
    CART_TRIGGER_SELECTORS,
    CUSTOMER_FIELD_SELECTORS,
    FULFILLMENT_TAB_TEXTS,
    MARKETING_OPT_IN_SELECTORS,
    ORDER_DELAYED_MAX_CONFIRMATIONS,
)
from checkout_engine.browser.driver import Element, PageDriver, click_with_fallback
from checkout_engine.browser.prompts import resolve_prompts
from checkout_engine.errors import LoginWallDetected, ResolutionFailure
from checkout_engine.models import CustomerInfo, LoginMethod, RunStage
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class ControlQuery:
    """One way of locating a control: by ARIA role + name, by text inside a selector, or by selector alone."""

    label: str
    text: Optional[Pattern[str]] = None
    role: Optional[str] = None
    selector: Optional[str] = None

    async def locate(self, driver: PageDriver, timeout_ms: int) -> Optional[Element]:
        if self.role and self.text is not None:
            return await driver.find_by_role(self.role, self.text, timeout_ms=timeout_ms)
        if self.text is not None:
            return await driver.find_by_text(self.text, selector=self.selector, timeout_ms=timeout_ms)
        if self.selector:
            return await driver.find(self.selector, timeout_ms=timeout_ms)
        return None


_VIEW_CART = re.compile(r"view\s+(order|cart|bag)|review\s+order|^\s*(cart|bag)\s*$", re.IGNORECASE)
_CHECKOUT = re.compile(r"check\s*out|continue\s+to\s+(checkout|payment)|proceed\s+to\s+checkout", re.IGNORECASE)
_CONFIRM_ADDRESS = re.compile(r"confirm\s+address|use\s+this\s+address|save\s+address", re.IGNORECASE)
_GUEST = re.compile(r"(check\s*out|continue|order)\s+as\s+(a\s+)?guest|guest\s+check\s*out", re.IGNORECASE)
_SIGN_IN = r"(?:sign|log)[\s-]?in"
_LOGIN_REQUIRED = re.compile(
    rf"\bmust\s+{_SIGN_IN}\b|\b{_SIGN_IN}\s+(?:is\s+)?required\b|\b{_SIGN_IN}\s+to\s+(?:continue|check\s*out|order)",
    re.IGNORECASE,
)
_PLACE_ORDER = re.compile(r"^\s*(place|submit|complete)\s+(my\s+)?order\b|^\s*pay\s+(now|\$)", re.IGNORECASE)
_ORDER_DELAYED = re.compile(
    r"order\s+delayed|delivery\s+time.*no\s+longer\s+available|new\s+ready\s+time", re.IGNORECASE
)

VIEW_CART_CONTROLS: tuple[ControlQuery, ...] = (
    ControlQuery("view_order_button", _VIEW_CART, role="button"),
    ControlQuery("view_order_link", _VIEW_CART, role="link"),
    ControlQuery("cart_trigger", selector=CART_TRIGGER_SELECTORS),
)

CHECKOUT_CONTROLS: tuple[ControlQuery, ...] = (
    ControlQuery("checkout_button", _CHECKOUT, role="button"),
    ControlQuery("checkout_link", _CHECKOUT, role="link"),
    ControlQuery("checkout_testid", selector="[data-testid*='checkout' i]"),
    ControlQuery("checkout_text", _CHECKOUT, selector="button, a, [role='button']"),
)

PLACE_ORDER_CONTROLS: tuple[ControlQuery, ...] = (
    ControlQuery("place_order_button", _PLACE_ORDER, role="button"),
    ControlQuery("place_order_text", _PLACE_ORDER, selector="button, [role='button'], input[type='submit']"),
    ControlQuery("submit_testid", selector="[data-testid*='place-order' i], [data-testid*='submit-order' i]"),
)


async def click_first_control(
    driver: PageDriver,
    controls: Sequence[ControlQuery],
    ctx: "RunContext",
    *,
    timeout_ms: Optional[int] = None,
) -> Optional[str]:
    """Click the first control that resolves; returns its label, or None if none did."""
    timeout_ms = ctx.timings.short_wait_ms if timeout_ms is None else timeout_ms
    for control in controls:
        ctx.check_cancelled()
        element = await control.locate(driver, timeout_ms)
        if element is None:
            continue
        try:
            method = await click_with_fallback(element)
        except Exception as e:
            logger.info("checkout.control_click_failed", control=control.label, error=str(e)[:200])
            continue
        logger.info("checkout.control_clicked", control=control.label, method=method)
        await ctx.sleep(ctx.timings.settle_ms)
        return control.label
    return None


# --- Cart review / checkout entry ---


async def proceed_to_checkout(driver: PageDriver, ctx: "RunContext") -> bool:
    """Open the cart if needed, then click the checkout CTA."""
    label = await click_first_control(driver, CHECKOUT_CONTROLS, ctx)
    if label is None:
        opened = await click_first_control(driver, VIEW_CART_CONTROLS, ctx)
        if opened:
            await resolve_prompts(driver, ctx)
            label = await click_first_control(driver, CHECKOUT_CONTROLS, ctx, timeout_ms=ctx.timings.control_wait_ms)
    if label is None:
        logger.warning("checkout.entry_not_found", url=driver.url)
        return False
    await resolve_prompts(driver, ctx)
    ctx.step("checkout_entry", control=label)
    return True


# --- Login wall ---


@dataclass(frozen=True)
class LoginWall:
    required: bool
    method: Optional[LoginMethod] = None
    guest_option: bool = False


def detect_login_wall(text: str) -> LoginWall:
    """Mandatory sign-in phrasing, the login method it asks for, and whether a guest path is offered."""
    lower = (text or "").lower()
    guest_option = bool(_GUEST.search(lower))
    required = bool(_LOGIN_REQUIRED.search(lower))
    if not required:
        return LoginWall(required=False, guest_option=guest_option)

    method: LoginMethod
    if "phone" in lower and "code" in lower:
        method = "phone_otp"
    elif "email" in lower and "password" in lower:
        method = "email_password"
    elif any(p in lower for p in ("google", "facebook", "apple")):
        method = "social"
    else:
        method = "unknown"
    return LoginWall(required=True, method=method, guest_option=guest_option)


def guest_checkout_available(text: str, wall: LoginWall) -> bool:
    """Explicit guest option, or contact fields visible without a login requirement."""
    if wall.guest_option:
        return True
    return not wall.required and bool(re.search(r"email|phone|contact", text or "", re.IGNORECASE))


async def bypass_login_wall(driver: PageDriver, ctx: "RunContext") -> bool:
    element = await driver.find_by_text(_GUEST, selector="button, a, [role='button'], label", timeout_ms=3000)
    if element is None:
        return False
    try:
        await click_with_fallback(element)
    except Exception as e:
        logger.warning("checkout.guest_click_failed", error=str(e)[:200])
        return False
    logger.info("checkout.guest_selected")
    await ctx.sleep(ctx.timings.settle_ms)
    return True


async def ensure_checkout_access(driver: PageDriver, ctx: "RunContext") -> LoginWall:
    """
    Get past a login wall via guest checkout if one is offered.

    Raises LoginWallDetected when sign-in is mandatory and no guest path works.
    """
    wall = detect_login_wall(await driver.body_text())
    if wall.guest_option:
        await bypass_login_wall(driver, ctx)
        if wall.required:
            wall = detect_login_wall(await driver.body_text())
    if wall.required:
        logger.warning("checkout.login_wall", method=wall.method)
        raise LoginWallDetected(wall.method or "unknown")
    return wall


# --- Fulfillment and address ---


async def select_fulfillment(driver: PageDriver, order_type: str, ctx: "RunContext") -> Optional[str]:
    """Click the pickup/delivery tab if one is shown, then clear any prompts it raises."""
    chosen = None
    for text in FULFILLMENT_TAB_TEXTS.get(order_type, ()):
        pattern = re.compile(rf"^\s*{re.escape(text)}\s*$", re.IGNORECASE)
        element = None
        for role in ("tab", "radio", "button"):
            element = await driver.find_by_role(role, pattern, timeout_ms=ctx.timings.short_wait_ms // 2 or 1)
            if element is not None:
                break
        if element is None:
            element = await driver.find_by_text(text, exact=True, timeout_ms=ctx.timings.short_wait_ms)
        if element is None:
            continue
        try:
            await click_with_fallback(element)
        except Exception as e:
            logger.info("fulfillment.click_failed", option=text, error=str(e)[:200])
            continue
        chosen = text
        logger.info("fulfillment.selected", order_type=order_type, option=text)
        await ctx.sleep(ctx.timings.prompt_settle_ms)
        break
    await resolve_prompts(driver, ctx)
    return chosen


async def _find_first(driver: PageDriver, selectors: Sequence[str], timeout_ms: int) -> Optional[Element]:
    for selector in selectors:
        element = await driver.find(selector, timeout_ms=timeout_ms)
        if element is not None:
            return element
    return None


@dataclass
class AddressEntry:
    filled: bool
    suggestion_selected: bool = False


async def enter_delivery_address(
    driver: PageDriver,
    address: str,
    ctx: "RunContext",
    *,
    apt: Optional[str] = None,
) -> AddressEntry:
    """
    Type the address and take the first autocomplete suggestion, but only if
    one actually appears.
    """
    field = await _find_first(driver, ADDRESS_INPUT_SELECTORS, ctx.timings.short_wait_ms)
    if field is None:
        logger.info("delivery.address_field_missing")
        return AddressEntry(filled=False)

    await field.fill(address)
    await ctx.sleep(ctx.timings.autocomplete_wait_ms)
    suggestion = await driver.find(AUTOCOMPLETE_SUGGESTION_SELECTOR, timeout_ms=ctx.timings.short_wait_ms)
    selected = False
    if suggestion is not None:
        try:
            await click_with_fallback(suggestion)
            selected = True
            await ctx.sleep(ctx.timings.prompt_settle_ms)
        except Exception as e:
            logger.info("delivery.suggestion_click_failed", error=str(e)[:200])

    confirm = await driver.find_by_role("button", _CONFIRM_ADDRESS, timeout_ms=ctx.timings.short_wait_ms)
    if confirm is not None:
        try:
            await confirm.click()
            await ctx.sleep(ctx.timings.prompt_settle_ms)
        except Exception as e:
            logger.info("delivery.confirm_address_failed", error=str(e)[:200])

    if apt:
        apt_field = await _find_first(driver, APT_INPUT_SELECTORS, ctx.timings.short_wait_ms)
        if apt_field is not None:
            await apt_field.fill(apt)

    logger.info("delivery.address_entered", suggestion_selected=selected)
    return AddressEntry(filled=True, suggestion_selected=selected)


def detect_delivery_unavailable(text: str) -> bool:
    return bool(
        re.search(
            r"outside.*delivery\s+(area|zone|radius)|not\s+deliver|delivery.*(unavailable|not\s+available)",
            text or "",
            re.IGNORECASE,
        )
    )


# --- Customer info ---


async def fill_customer_info(driver: PageDriver, customer: CustomerInfo, ctx: "RunContext") -> list[str]:
    """
    Fill contact fields that are present. The phone is typed digit by digit
    since masked inputs drop pasted values.
    """
    values = {
        "email": customer.email,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "phone": customer.phone_digits,
    }
    filled: list[str] = []
    for name, selectors in CUSTOMER_FIELD_SELECTORS.items():
        ctx.check_cancelled()
        element = await _find_first(driver, selectors, ctx.timings.short_wait_ms)
        if element is None:
            logger.info("customer_info.field_missing", field=name)
            continue
        try:
            if name == "phone":
                await element.click()
                await element.type(values[name], delay_ms=50)
            else:
                await element.fill(values[name])
        except Exception as e:
            logger.warning("customer_info.fill_failed", field=name, error=str(e)[:200])
            continue
        filled.append(name)

    if not filled:
        raise ResolutionFailure(
            "No customer information fields found",
            stage=RunStage.CUSTOMER_INFO,
            diagnostics={"url": driver.url},
        )
    await opt_out_of_marketing(driver, ctx)
    logger.info("customer_info.filled", fields=filled)
    return filled


async def opt_out_of_marketing(driver: PageDriver, ctx: "RunContext") -> bool:
    """Uncheck an email-marketing opt-in if it is checked."""
    for selector in MARKETING_OPT_IN_SELECTORS:
        element = await driver.find(selector, timeout_ms=ctx.timings.short_wait_ms // 3 or 1, state="attached")
        if element is None:
            continue
        try:
            if await element.is_checked():
                await element.set_checked(False)
                logger.info("customer_info.marketing_opt_out", selector=selector)
                return True
        except Exception as e:
            logger.debug("customer_info.marketing_opt_out_failed", error=str(e)[:200])
        return False
    return False


# --- Totals ---


@dataclass(frozen=True)
class TipTotal:
    tip_present: bool
    total: Optional[float]


_TOTAL_LINE = re.compile(r"\btotal\b[^$\n]*\$\s?(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)", re.IGNORECASE)


def detect_tip_and_total(text: str) -> TipTotal:
    """Tip selector present (tip plus a percentage choice) and the displayed total."""
    text = text or ""
    tip_present = bool(re.search(r"\btip\b", text, re.IGNORECASE)) and bool(
        re.search(r"\b(10|15|18|20)%", text)
    )
    match = _TOTAL_LINE.search(text)
    return TipTotal(tip_present=tip_present, total=float(match.group(1).replace(",", "")) if match else None)


# --- Submission ---


async def submit_order(driver: PageDriver, ctx: "RunContext") -> str:
    """Click the place-order control. Raises ResolutionFailure if there is none."""
    try:
        await driver.press("Escape")
    except Exception:
        logger.debug("submit.escape_failed")
    label = await click_first_control(driver, PLACE_ORDER_CONTROLS, ctx, timeout_ms=ctx.timings.control_wait_ms)
    if label is None:
        raise ResolutionFailure(
            "Place order control not found",
            stage=RunStage.SUBMIT,
            attempted=[c.label for c in PLACE_ORDER_CONTROLS],
            diagnostics={"url": driver.url},
        )
    return label


async def confirm_delayed_order(driver: PageDriver, ctx: "RunContext") -> int:
    """
    Accept "order delayed / new ready time" modals, up to
    ORDER_DELAYED_MAX_CONFIRMATIONS times. Returns how many were confirmed.
    """
    confirmed = 0
    for _ in range(ORDER_DELAYED_MAX_CONFIRMATIONS):
        notice = await driver.find_by_text(_ORDER_DELAYED, timeout_ms=ctx.timings.short_wait_ms)
        if notice is None:
            break
        button = await driver.find_by_text(
            _PLACE_ORDER,
            selector="[role='dialog'] button, [aria-modal='true'] button, .PORTAL button",
            timeout_ms=ctx.timings.short_wait_ms,
        )
        if button is None:
            logger.warning("submit.order_delayed_no_button")
            break
        await click_with_fallback(button)
        confirmed += 1
        logger.info("submit.order_delayed_confirmed", count=confirmed)
        await ctx.sleep(ctx.timings.settle_ms)
    return confirmed
