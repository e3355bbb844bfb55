"""
Browser automation layer: session management, the PageDriver interface and
the resolution engines built on it (bot detection, navigation retry, cart
state, item and modifier resolution, prompts).

Public API: re-exports the symbols the orchestration modules and tests use so
that `from checkout_engine.browser import ...` stays valid as modules move.
"""

from __future__ import annotations

from checkout_engine.browser.bot_detection import classify, classify_signals, pick_waf_headers
from checkout_engine.browser.cart_state import has_advanced, parse_cart_count, snapshot, wait_for_advance
from checkout_engine.browser.constants import TEST_CARD_NUMBER, Timings
from checkout_engine.browser.driver import (
    Element,
    FrameInfo,
    NavigationResponse,
    PageDriver,
    PlaywrightPageDriver,
    click_with_fallback,
)
from checkout_engine.browser.item_resolution import ItemOpenResult, open_item, rank_item_candidates
from checkout_engine.browser.modifiers import (
    ADD_TO_CART_LADDER,
    AddResult,
    add_to_cart,
    apply_requested_modifiers,
    choose_default_option,
    resolve_required_groups,
    strip_category_prefix,
)
from checkout_engine.browser.navigation_retry import NavigateResult, backoff_ms, navigate_with_retry
from checkout_engine.browser.prompts import dismiss_overlays, resolve_prompts
from checkout_engine.browser.scripts import ALL_SCRIPTS, PageScript
from checkout_engine.browser.session import BrowserSessionManager, parse_proxy_url, session_factory_from_config

__all__ = [
    # constants
    "Timings",
    "TEST_CARD_NUMBER",
    # driver
    "Element",
    "FrameInfo",
    "NavigationResponse",
    "PageDriver",
    "PlaywrightPageDriver",
    "click_with_fallback",
    # scripts
    "PageScript",
    "ALL_SCRIPTS",
    # session
    "BrowserSessionManager",
    "parse_proxy_url",
    "session_factory_from_config",
    # bot_detection
    "classify",
    "classify_signals",
    "pick_waf_headers",
    # navigation_retry
    "NavigateResult",
    "backoff_ms",
    "navigate_with_retry",
    # cart_state
    "has_advanced",
    "parse_cart_count",
    "snapshot",
    "wait_for_advance",
    # item_resolution
    "ItemOpenResult",
    "open_item",
    "rank_item_candidates",
    # modifiers
    "ADD_TO_CART_LADDER",
    "AddResult",
    "add_to_cart",
    "apply_requested_modifiers",
    "choose_default_option",
    "resolve_required_groups",
    "strip_category_prefix",
    # prompts
    "dismiss_overlays",
    "resolve_prompts",
]
