"""
Browser automation constants: session fingerprint, timing ceilings, selector
cascades and keyword sets.

Selector lists are heuristics tuned against the ordering platforms seen so far
(Toast, Square Online, Slice, ChowNow). Expect per-platform tuning here rather
than in the orchestration modules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.config import AppConfig

# --- Session fingerprint ---

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1366, "height": 900}
LOCALE = "en-US"
TIMEZONE_ID = "America/Los_Angeles"
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--ignore-certificate-errors",
]
PROXY_PREFLIGHT_TIMEOUT_MS = 15_000


@dataclass(frozen=True)
class Timings:
    """
    Every wait in a run has a ceiling. Short waits (1-3 s) are for optional
    affordances, long ones (10-90 s) for page loads and critical CTAs.
    """

    settle_ms: int = 3000
    short_wait_ms: int = 1500
    control_wait_ms: int = 10_000
    nav_timeout_ms: int = 60_000
    nav_base_delay_ms: int = 2000
    nav_max_attempts: int = 3
    cart_poll_ms: int = 400
    cart_advance_timeout_ms: int = 6000
    prompt_settle_ms: int = 1000
    autocomplete_wait_ms: int = 2000
    confirmation_timeout_ms: int = 30_000

    @classmethod
    def from_config(cls, config: Optional[AppConfig]) -> "Timings":
        if config is None:
            return cls()
        return cls(
            settle_ms=config.settle_delay_ms,
            nav_timeout_ms=config.nav_timeout_ms,
            nav_base_delay_ms=config.nav_base_delay_ms,
            nav_max_attempts=config.nav_max_attempts,
        )


# --- Bot detection ---

# iframe src substring -> block type
CHALLENGE_IFRAME_HOSTS = {
    "challenges.cloudflare.com": "cloudflare_challenge",
    "hcaptcha.com": "captcha",
    "google.com/recaptcha": "captcha",
    "recaptcha.net": "captcha",
    "arkoselabs.com": "captcha",
    "geo.captcha-delivery.com": "captcha",
}

# DOM marker selector -> block type; evaluated in-page in this order
CHALLENGE_MARKERS = {
    "input[name='cf-turnstile-response']": "cloudflare_challenge",
    "#challenge-form": "cloudflare_challenge",
    "#challenge-running": "cloudflare_challenge",
    ".cf-error-details": "waf_block",
    ".h-captcha": "captcha",
    ".g-recaptcha": "captcha",
    "[data-sitekey][class*='captcha' i]": "captcha",
}

# Phrase -> block type. Titles are trusted; body copy alone is not.
BLOCK_PHRASES = {
    "just a moment": "cloudflare_challenge",
    "checking your browser": "cloudflare_challenge",
    "attention required": "cloudflare_challenge",
    "cloudflare": "cloudflare_challenge",
    "verify you are human": "captcha",
    "captcha": "captcha",
    "access denied": "waf_block",
    "unusual traffic": "waf_block",
    "request blocked": "waf_block",
}

WAF_HEADER_NAMES = frozenset({"server", "via", "x-cache", "x-request-id", "cf-ray", "cf-cache-status"})
WAF_HEADER_PREFIXES = ("cf-", "x-amz-cf-", "x-akamai-", "x-sucuri-", "x-iinfo", "x-cdn")

# --- Menu and item resolution ---

# (strategy label, container selector) tried in order with exact-text match
ITEM_CASCADE = (
    ("card", "[data-testid*='menu-item'], [class*='menuItem'], [class*='menu-item'], [class*='item-card']"),
    ("list_item", "li"),
    ("anchor", "a"),
    ("button", "button, [role='button']"),
    ("heading", "h2, h3, h4"),
    ("span", "span"),
)

ADD_CONTROL_SELECTOR = (
    "button:has-text('Add to cart'), button:has-text('Add to order'), "
    "button:has-text('Add to bag'), [data-testid*='add-to-cart'], "
    "[data-testid*='addToCart'], button[class*='addToCart']"
)

QUANTITY_INCREMENT_SELECTOR = (
    "button[aria-label*='increase' i], button[aria-label*='increment' i], "
    "button[aria-label*='add one' i], [data-testid*='increment']"
)

MENU_ITEM_SCAN_LIMIT = 200
MENU_CONSISTENT_MIN_ITEMS = 5
MENU_ENDPOINT_HINTS = ("menu", "catalog", "graphql", "/items", "products")

# --- Modifiers ---

REQUIRED_MARKER_PATTERN = r"\brequired\b|choose\s+1|select\s+1|pick\s+1"
MODIFIER_GROUP_SELECTORS = (
    "fieldset, [role='radiogroup'], [role='group'], "
    "[class*='modifier' i], [class*='option-group' i], [data-testid*='modifier']"
)

# --- Cart ---

CART_TRIGGER_SELECTORS = (
    "[data-testid*='cart' i], [aria-label*='cart' i], [class*='cart' i] button, "
    "a[href*='cart'], button[class*='cart' i], [aria-label*='bag' i]"
)
CART_CTA_PHRASES = ("view order", "checkout", "check out", "review order", "view cart", "view bag")

# --- Prompts and overlays ---

PROMPT_KEYWORDS = (
    "schedule order",
    "start order",
    "order now",
    "asap",
    "continue",
    "confirm",
    "next",
    "save",
    "done",
    "apply",
)
# A candidate whose text matches any of these is never clicked by the prompt loop.
PROMPT_EXCLUDED_PATTERNS = (
    r"sign\s*in",
    r"log\s*in",
    r"sign\s*up",
    r"create\s+(an\s+)?account",
    r"continue\s+with\s+(google|apple|facebook|email|phone)",
    r"password",
    r"place\s+order",
    r"submit\s+order",
    r"\bpay\b",
)
PROMPT_MAX_ITERATIONS = 6
PROMPT_MAX_TEXT_LENGTH = 40
INTERACTIVE_SELECTORS = "button, [role='button'], a[role='button'], input[type='button'], input[type='submit']"

OVERLAY_DISMISS_TEXTS = ("accept", "accept all", "agree", "got it", "ok", "close", "no thanks", "dismiss")
OVERLAY_CONTAINER_SELECTORS = (
    "[role='dialog'], [aria-modal='true'], [class*='cookie' i], [id*='cookie' i], "
    "[class*='consent' i], #onetrust-consent-sdk, [class*='modal' i]"
)

# --- Checkout ---

FULFILLMENT_TAB_TEXTS = {"pickup": ("Pickup", "Pick up", "Takeout"), "delivery": ("Delivery",)}

ADDRESS_INPUT_SELECTORS = (
    "input[autocomplete='street-address']",
    "input[autocomplete='address-line1']",
    "input[name*='address' i]",
    "input[placeholder*='address' i]",
    "input[aria-label*='address' i]",
)
AUTOCOMPLETE_SUGGESTION_SELECTOR = (
    ".pac-item, [role='option'], [role='listbox'] li, "
    "[class*='suggestion' i] li, [data-testid*='suggestion']"
)
APT_INPUT_SELECTORS = ("input[name*='apt' i]", "input[placeholder*='apt' i]", "input[name*='unit' i]")

CUSTOMER_FIELD_SELECTORS = {
    "email": ("input[type='email']", "input[name*='email' i]", "input[autocomplete='email']"),
    "first_name": ("input[name*='first' i]", "input[autocomplete='given-name']", "input[placeholder*='first' i]"),
    "last_name": ("input[name*='last' i]", "input[autocomplete='family-name']", "input[placeholder*='last' i]"),
    "phone": ("input[type='tel']", "input[name*='phone' i]", "input[autocomplete='tel']"),
}
MARKETING_OPT_IN_SELECTORS = (
    "#subscribeToEmailMarketing",
    "input[type='checkbox'][name*='marketing' i]",
    "input[type='checkbox'][name*='subscribe' i]",
)

PROBE_TEST_ADDRESS = "2680 32nd St, Santa Monica, CA 90405"

# --- Payment ---

HOSTED_PAYMENT_DOMAINS = {
    "js.stripe.com": "stripe",
    "stripe.com": "stripe",
    "squareup.com": "square",
    "squarecdn.com": "square",
    "braintreegateway.com": "braintree",
    "braintree-api.com": "braintree",
    "adyen.com": "adyen",
    "toasttab.com": "toast",
    "checkout.com": "checkout_com",
    "spreedly.com": "spreedly",
    "paypal.com": "paypal",
}
PAYMENT_FRAME_NAME_HINTS = ("toast-checkout", "card", "payment")

CARD_FIELD_SELECTORS = {
    "card_number": (
        "input[autocomplete='cc-number']",
        "input[name*='cardnumber' i]",
        "input[name*='card_number' i]",
        "input[placeholder*='card number' i]",
        "input[id*='cardNumber' i]",
    ),
    "expiry": (
        "input[autocomplete='cc-exp']",
        "input[name*='exp' i]",
        "input[placeholder*='MM' i]",
    ),
    "cvv": (
        "input[autocomplete='cc-csc']",
        "input[name*='cvc' i]",
        "input[name*='cvv' i]",
        "input[placeholder*='cvv' i]",
        "input[placeholder*='cvc' i]",
    ),
    "zip": (
        "input[autocomplete='postal-code']",
        "input[name*='zip' i]",
        "input[name*='postal' i]",
        "input[placeholder*='zip' i]",
    ),
}

# Guaranteed-decline test card; dry runs never move funds.
TEST_CARD_NUMBER = "4000000000000002"

# --- Submission and confirmation ---

ORDER_DELAYED_MAX_CONFIRMATIONS = 5
CONFIRMATION_PHRASES = ("thank you", "order confirmed", "confirmation", "order placed", "order received")
DELIVERY_PROVIDER_KEYWORDS = ("track", "status", "delivery", "doordash", "ubereats", "grubhub", "postmates")
PLAUSIBLE_TOTAL_RANGE = (0.0, 1000.0)
