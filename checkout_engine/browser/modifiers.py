"""
Modifier resolution and the add-to-cart escalation ladder.

Requested modifiers are matched by label text (category prefix stripped).
Required groups that are still unresolved get a default: the first option
showing a nonzero price, else the first enabled option. Every forced choice
is re-verified from a fresh group snapshot.

Adding is an ordered ladder of strategies sharing one contract,
`(AddAttempt) -> StrategyOutcome`. After each strategy that acted, the cart
is checked for advancement; the ladder stops at the first verified add, or
when the add control has gone away (the modal closed without a visible cart
change). Running out of strategies is a ResolutionFailure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from checkout_engine.browser.cart_state import wait_for_advance
from checkout_engine.browser.constants import (
    ADD_CONTROL_SELECTOR,
    MODIFIER_GROUP_SELECTORS,
    REQUIRED_MARKER_PATTERN,
)
from checkout_engine.browser.driver import Element, PageDriver, click_with_fallback
from checkout_engine.browser.item_resolution import normalize_text
from checkout_engine.browser.scripts import (
    ENABLE_AND_CLICK,
    FORCE_CHECK,
    MODIFIER_GROUPS,
    POINTER_SEQUENCE,
    TAG_ELEMENT,
    ModifierGroup,
    ModifierGroupsParams,
    ModifierOption,
    TargetParams,
    oa_selector,
)
from checkout_engine.errors import ResolutionFailure, RunCancelled
from checkout_engine.models import CartState, RunStage
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

ADD_CONTROL_ID = "add-control"
_PRICE = re.compile(r"\$\s*(\d+(?:\.\d{1,2})?)")
_CATEGORY_PREFIX = re.compile(r"^[^-]+?(?:\s+-\s*|\s*-\s+)(.+)$")

# (strategy label, selector scope, exact) for requested modifier text
_MODIFIER_TEXT_STRATEGIES = (
    ("label", "label", False),
    ("text", None, True),
    ("span", "span", False),
)


# --- Pure helpers ---


def strip_category_prefix(modifier: str) -> str:
    """Strip a category prefix: "Size - Large" becomes "Large"; "Gluten-free" is kept."""
    match = _CATEGORY_PREFIX.match(modifier.strip())
    return match.group(1).strip() if match else modifier.strip()


def option_price(option: ModifierOption) -> float:
    match = _PRICE.search(option.get("label") or "")
    return float(match.group(1)) if match else 0.0


def choose_default_option(group: ModifierGroup) -> Optional[ModifierOption]:
    """First enabled option with a nonzero price, else the first enabled option."""
    enabled = [o for o in group.get("options", []) if not o.get("disabled")]
    for option in enabled:
        if option_price(option) > 0:
            return option
    return enabled[0] if enabled else None


def unresolved_required_groups(groups: list[ModifierGroup]) -> list[ModifierGroup]:
    return [g for g in groups if g.get("required") and not any(o.get("checked") for o in g.get("options", []))]


def is_modifier_selected(groups: list[ModifierGroup], label: str) -> bool:
    target = normalize_text(label)
    for group in groups:
        for option in group.get("options", []):
            if option.get("checked") and target and target in normalize_text(option.get("label", "")):
                return True
    return False


# --- Group resolution ---


async def snapshot_groups(driver: PageDriver) -> list[ModifierGroup]:
    params: ModifierGroupsParams = {
        "groupSelector": MODIFIER_GROUP_SELECTORS,
        "requiredPattern": REQUIRED_MARKER_PATTERN,
    }
    try:
        return await driver.evaluate(MODIFIER_GROUPS, params) or []
    except Exception as e:
        logger.warning("modifier.snapshot_failed", error=str(e)[:200])
        return []


def _group_resolved(groups: list[ModifierGroup], group_id: str) -> bool:
    for group in groups:
        if group.get("id") == group_id:
            return any(o.get("checked") for o in group.get("options", []))
    return False


async def _force_check(driver: PageDriver, option_id: str) -> bool:
    params: TargetParams = {"id": option_id}
    try:
        return bool(await driver.evaluate(FORCE_CHECK, params))
    except Exception as e:
        logger.debug("modifier.force_check_failed", option_id=option_id, error=str(e)[:200])
        return False


async def apply_requested_modifiers(driver: PageDriver, modifiers: list[str], ctx: "RunContext") -> list[str]:
    """Select each requested modifier by text. Returns the ones that matched nothing."""
    unmatched: list[str] = []
    for raw in modifiers:
        ctx.check_cancelled()
        label = strip_category_prefix(raw)
        if is_modifier_selected(await snapshot_groups(driver), label):
            logger.info("modifier.already_selected", modifier=label)
            continue

        selected_by = None
        for strategy, scope, exact in _MODIFIER_TEXT_STRATEGIES:
            element = await driver.find_by_text(
                label, selector=scope, exact=exact, timeout_ms=ctx.timings.short_wait_ms
            )
            if element is None:
                continue
            try:
                await click_with_fallback(element)
            except Exception:
                continue
            selected_by = strategy
            break

        if selected_by:
            logger.info("modifier.selected", modifier=label, strategy=selected_by)
            await ctx.sleep(ctx.timings.prompt_settle_ms // 2)
        else:
            logger.warning("modifier.not_found", modifier=label)
            unmatched.append(label)
    return unmatched


async def resolve_required_groups(driver: PageDriver, ctx: "RunContext") -> list[ModifierGroup]:
    """
    Auto-select a default in every required group that has nothing checked.

    Returns the groups still unresolved afterwards.
    """
    groups = await snapshot_groups(driver)
    for group in unresolved_required_groups(groups):
        option = choose_default_option(group)
        if option is None:
            logger.warning("modifier.group_no_options", group=group.get("header"))
            continue
        element = await driver.find(oa_selector(option["id"]), timeout_ms=ctx.timings.short_wait_ms, state="attached")
        if element is not None:
            try:
                await element.set_checked(True)
            except Exception as e:
                logger.debug("modifier.set_checked_failed", option=option.get("label"), error=str(e)[:200])

        if not _group_resolved(await snapshot_groups(driver), group["id"]):
            await _force_check(driver, option["id"])

        logger.info(
            "modifier.required_default",
            group=group.get("header"),
            option=option.get("label"),
            price=option_price(option),
        )
    return unresolved_required_groups(await snapshot_groups(driver))


# --- Add-to-cart ladder ---


@dataclass
class AddAttempt:
    driver: PageDriver
    ctx: "RunContext"
    control: Element
    item_name: str
    number: int = 0


@dataclass
class StrategyOutcome:
    acted: bool
    detail: str = ""


@dataclass
class AddResult:
    clicked: bool
    verified: bool
    strategy: Optional[str]
    cart: Optional[CartState] = None
    attempted: list[str] = field(default_factory=list)


AddStrategy = Callable[[AddAttempt], Awaitable[StrategyOutcome]]


async def _click(attempt: AddAttempt) -> StrategyOutcome:
    if await attempt.control.is_disabled():
        return StrategyOutcome(False, "disabled")
    await attempt.control.click(timeout_ms=attempt.ctx.timings.short_wait_ms * 2)
    return StrategyOutcome(True)


async def _force_click(attempt: AddAttempt) -> StrategyOutcome:
    if await attempt.control.is_disabled():
        return StrategyOutcome(False, "disabled")
    await attempt.control.click(force=True, timeout_ms=attempt.ctx.timings.short_wait_ms * 2)
    return StrategyOutcome(True)


async def _force_required_inputs(attempt: AddAttempt) -> StrategyOutcome:
    """Second DOM pass: force the first unchecked input of each unresolved group."""
    forced = 0
    for group in unresolved_required_groups(await snapshot_groups(attempt.driver)):
        for option in group.get("options", []):
            if not option.get("checked") and not option.get("disabled"):
                if await _force_check(attempt.driver, option["id"]):
                    forced += 1
                break
    if await attempt.control.is_disabled():
        return StrategyOutcome(False, f"forced_{forced}_still_disabled")
    await attempt.control.click(timeout_ms=attempt.ctx.timings.short_wait_ms * 2)
    return StrategyOutcome(True, f"forced_{forced}")


async def _enable_and_click(attempt: AddAttempt) -> StrategyOutcome:
    params: TargetParams = {"id": ADD_CONTROL_ID}
    return StrategyOutcome(bool(await attempt.driver.evaluate(ENABLE_AND_CLICK, params)))


async def _pointer_sequence(attempt: AddAttempt) -> StrategyOutcome:
    params: TargetParams = {"id": ADD_CONTROL_ID}
    return StrategyOutcome(bool(await attempt.driver.evaluate(POINTER_SEQUENCE, params)))


ADD_TO_CART_LADDER: list[tuple[str, AddStrategy]] = [
    ("click", _click),
    ("force_click", _force_click),
    ("force_required_inputs", _force_required_inputs),
    ("enable_and_click", _enable_and_click),
    ("pointer_sequence", _pointer_sequence),
]


async def _control_still_visible(control: Element) -> bool:
    try:
        return await control.is_visible()
    except Exception:
        return False


async def add_to_cart(
    driver: PageDriver,
    ctx: "RunContext",
    *,
    item_name: str,
    before: CartState,
) -> AddResult:
    """Run the ladder against the item's add control until the cart advances."""
    control = await driver.find(ADD_CONTROL_SELECTOR, timeout_ms=ctx.timings.control_wait_ms)
    if control is None:
        raise ResolutionFailure(
            f"Add-to-cart control not found for {item_name}",
            stage=RunStage.ADD_TO_CART,
            diagnostics={"item": item_name, "url": driver.url},
        )
    try:
        await control.evaluate(TAG_ELEMENT, ADD_CONTROL_ID)
    except Exception as e:
        logger.debug("add_to_cart.tag_failed", error=str(e)[:200])

    attempt = AddAttempt(driver=driver, ctx=ctx, control=control, item_name=item_name)
    attempted: list[str] = []
    last_state: Optional[CartState] = None

    for number, (name, strategy) in enumerate(ADD_TO_CART_LADDER, start=1):
        ctx.check_cancelled()
        attempt.number = number
        try:
            outcome = await strategy(attempt)
        except RunCancelled:
            raise
        except Exception as e:
            attempted.append(f"{name}:error")
            logger.info("add_to_cart.strategy_error", strategy=name, error=str(e)[:200])
            continue
        if not outcome.acted:
            attempted.append(f"{name}:{outcome.detail or 'skipped'}")
            continue

        logger.info("add_to_cart.escalation", strategy=name, attempt=number, item=item_name)
        advanced, last_state = await wait_for_advance(driver, before, ctx)
        if advanced:
            attempted.append(f"{name}:verified")
            return AddResult(clicked=True, verified=True, strategy=name, cart=last_state, attempted=attempted)
        if not await _control_still_visible(control):
            attempted.append(f"{name}:control_gone")
            logger.warning("add_to_cart.unverified", strategy=name, item=item_name)
            return AddResult(clicked=True, verified=False, strategy=name, cart=last_state, attempted=attempted)
        attempted.append(f"{name}:not_verified")

    unresolved = unresolved_required_groups(await snapshot_groups(driver))
    diagnostics = {
        "item": item_name,
        "unresolved_groups": [g.get("header") or g.get("id") for g in unresolved],
        "control_text": await control.text(),
        "control_disabled": await control.is_disabled(),
    }
    logger.error("add_to_cart.exhausted", attempted=attempted, **diagnostics)
    raise ResolutionFailure(
        f"Could not add {item_name} to cart",
        stage=RunStage.ADD_TO_CART,
        attempted=attempted,
        diagnostics=diagnostics,
    )
