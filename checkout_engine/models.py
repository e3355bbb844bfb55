"""
Data contracts for order placement and injectability probes.

Requests and results are pydantic models so the HTTP layer can use them
directly; JSON uses camelCase aliases (restaurantUrl, dryRun, ...) while
Python code uses snake_case. Ephemeral in-run snapshots (CartState,
BotBlockSignal) are plain dataclasses and never leave the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class RunStage(str, Enum):
    """Ordered stages of a run; a run only ever moves forward."""

    INIT = "init"
    PAGE_LOAD = "page_load"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT = "checkout"
    DELIVERY = "delivery"
    CUSTOMER_INFO = "customer_info"
    PAYMENT = "payment"
    SUBMIT = "submit"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = list(RunStage)

BlockType = Literal["cloudflare_challenge", "captcha", "waf_block", "unknown", "none"]
Recommendation = Literal["bot-ready", "needs-investigation", "human-ops-only"]
LoginMethod = Literal["phone_otp", "email_password", "social", "unknown"]
PaymentSurfaceType = Literal["standard_inputs", "thirdparty_iframe", "wallet_only", "none"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Order placement ---


class OrderItem(_CamelModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, le=20)
    modifiers: list[str] = Field(default_factory=list)


class CustomerInfo(_CamelModel):
    first_name: str
    last_name: str
    email: str
    phone: str

    @property
    def phone_digits(self) -> str:
        return "".join(ch for ch in self.phone if ch.isdigit())


class PaymentInfo(_CamelModel):
    card_number: str
    expiry: str = Field(..., description="MM/YY")
    cvv: str
    zip: str


class DeliveryAddress(_CamelModel):
    street: str
    city: str
    state: str
    zip: str
    apt: Optional[str] = None

    def one_line(self) -> str:
        """Free-text form typed into address autocomplete fields."""
        return f"{self.street}, {self.city}, {self.state} {self.zip}"


class OrderRequest(_CamelModel):
    """One order, created by the caller and consumed once."""

    restaurant_url: str
    items: list[OrderItem] = Field(..., min_length=1)
    customer: CustomerInfo
    payment: PaymentInfo
    order_type: Literal["pickup", "delivery"] = "pickup"
    delivery_address: Optional[DeliveryAddress] = None
    dry_run: bool = False
    order_total: Optional[float] = None

    @field_validator("restaurant_url")
    @classmethod
    def _require_http_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("restaurantUrl must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def _delivery_needs_address(self) -> "OrderRequest":
        if self.order_type == "delivery" and self.delivery_address is None:
            raise ValueError("deliveryAddress is required for delivery orders")
        return self


class ConfirmationData(_CamelModel):
    """Best-effort confirmation fields; any of them may be missing."""

    confirmation_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[str] = None
    order_total: Optional[float] = None


class OrderResult(_CamelModel):
    """Terminal result of an order run."""

    success: bool
    message: str
    order_id: Optional[str] = None
    stage: RunStage
    confirmation: Optional[ConfirmationData] = None
    screenshots: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _success_means_complete(self) -> "OrderResult":
        if self.success and self.stage is not RunStage.COMPLETE:
            raise ValueError("a successful order must end at stage 'complete'")
        return self


# --- Ephemeral snapshots ---


@dataclass(frozen=True)
class CartState:
    count: Optional[int]
    has_action_cta: bool


@dataclass(frozen=True)
class BotBlockSignal:
    blocked: bool
    type: BlockType = "none"
    evidence: Optional[str] = None

    @classmethod
    def clear(cls) -> "BotBlockSignal":
        return cls(blocked=False, type="none")


# --- Probe reports ---


class PageLoadReport(_CamelModel):
    loaded: bool = False
    blocked: bool = False
    block_type: BlockType = "none"
    status: Optional[int] = None
    title: Optional[str] = None
    waf_headers: dict[str, str] = Field(default_factory=dict)
    attempts: int = 0
    error: Optional[str] = None


class MenuItemSample(_CamelModel):
    name: str
    price: Optional[float] = None
    has_image: bool = False
    category: Optional[str] = None


class MenuScrapeReport(_CamelModel):
    items_found: int = 0
    categories: list[str] = Field(default_factory=list)
    consistent: bool = False
    has_menu_endpoint: bool = False
    sample: list[MenuItemSample] = Field(default_factory=list)


class AddToCartReport(_CamelModel):
    attempted: bool = False
    item_name: Optional[str] = None
    clicked: bool = False
    cart_verified: bool = False
    strategy: Optional[str] = None
    error: Optional[str] = None


class CheckoutReport(_CamelModel):
    reached: bool = False
    login_required: bool = False
    login_method: Optional[LoginMethod] = None
    guest_checkout_available: bool = False
    payment_surface: PaymentSurfaceType = "none"
    payment_automatable: bool = False
    payment_providers: list[str] = Field(default_factory=list)
    tip_present: bool = False
    total: Optional[float] = None
    delivery_selector_present: bool = False
    delivery_available: Optional[bool] = None
    error: Optional[str] = None


class ConsistencyReport(_CamelModel):
    runs_completed: int = 0
    runs_successful: int = 0
    behavior_changed: bool = False
    notes: list[str] = Field(default_factory=list)


class ProbeResult(_CamelModel):
    """Scored readiness report for one target."""

    target: str
    platform: str = "unknown"
    page_load: PageLoadReport
    menu_scrape: MenuScrapeReport
    add_to_cart: AddToCartReport
    checkout: CheckoutReport
    consistency: ConsistencyReport
    injectability_score: int = Field(..., ge=0, le=100)
    recommendation: Recommendation
    blockers: list[str] = Field(default_factory=list)
    advantages: list[str] = Field(default_factory=list)
    screenshots: list[str] = Field(default_factory=list)
