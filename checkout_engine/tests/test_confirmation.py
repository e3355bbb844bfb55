"""
Unit tests for confirmation page extraction.
"""

from __future__ import annotations

import pytest

from checkout_engine.confirmation import (
    extract_confirmation,
    extract_estimated_delivery,
    extract_order_number,
    extract_order_total,
    extract_tracking_url,
    scrape_confirmation,
)
from checkout_engine.tests.fakes import FakePageDriver


def test_extract_order_number_labeled():
    assert extract_order_number("Thank you! Order #A1B2C3 has been received.") == "A1B2C3"
    assert extract_order_number("Your order number is 48213") == "48213"
    assert extract_order_number("Confirmation code: XK-4471") == "XK-4471"


def test_extract_order_number_requires_digit():
    assert extract_order_number("Order received. Thank you!") is None


def test_extract_order_number_from_hinted_elements():
    assert extract_order_number("Thanks!", ["Ref: TT-90210"]) == "TT-90210"


def test_extract_tracking_url():
    links = [
        {"href": "/menu", "text": "Back to menu", "onclick": ""},
        {"href": "/orders/123/status", "text": "Order status", "onclick": ""},
    ]
    assert extract_tracking_url(links, "https://order.example.com") == "https://order.example.com/orders/123/status"


def test_extract_tracking_url_absolute_and_onclick():
    assert (
        extract_tracking_url([{"href": "https://track.doordash.com/abc", "text": "Track", "onclick": ""}])
        == "https://track.doordash.com/abc"
    )
    onclick = [{"href": "", "text": "Track my order", "onclick": "window.open('https://t.example.com/x1')"}]
    assert extract_tracking_url(onclick) == "https://t.example.com/x1"


def test_extract_estimated_delivery():
    assert extract_estimated_delivery("Your order will be ready at 6:45 PM") == "6:45 PM"
    assert extract_estimated_delivery("Estimated: 25-35 min") == "25-35 min"
    assert extract_estimated_delivery("Thanks", ["Arriving soon"]) == "Arriving soon"
    assert extract_estimated_delivery("Thanks") is None


def test_extract_order_total_plausible():
    assert extract_order_total("Total: $24.73") == 24.73


def test_extract_order_total_rejects_implausible():
    assert extract_order_total("Total: $0.00") is None
    assert extract_order_total("Total: $1999.00") is None


def test_extract_order_total_skips_to_plausible_match():
    assert extract_order_total("Total: $0.00\nAmount charged: $18.20") == 18.20


def test_extract_order_total_thousands_separator_is_implausible():
    assert extract_order_total("Order confirmed. Total: $1,999.00") is None
    assert extract_order_total("Total: $1,234.00\nAmount charged: $24.73") == 24.73


def test_extract_order_total_ignores_subtotal():
    assert extract_order_total("Subtotal: $20.00 / Tax: $1.80 / Total: $21.80") == 21.80


def test_extract_confirmation_all_optional():
    data = extract_confirmation("")
    assert data.confirmation_number is None
    assert data.tracking_url is None
    assert data.estimated_delivery is None
    assert data.order_total is None


@pytest.mark.asyncio
async def test_scrape_confirmation(ctx):
    driver = FakePageDriver(
        url="https://order.example.com/confirmation/42",
        body="Thank you for your order!\nOrder #98765\nReady at 7:15 PM\nTotal: $31.40",
        scripts={
            "confirmation_hints": {
                "orderNumberTexts": [],
                "etaTexts": [],
                "links": [{"href": "/track/98765", "text": "Track order", "onclick": ""}],
            }
        },
    )
    driver.add_text("Thank you for your order!")

    data = await scrape_confirmation(driver, ctx)

    assert data.confirmation_number == "98765"
    assert data.tracking_url == "https://order.example.com/track/98765"
    assert data.estimated_delivery == "7:15 PM"
    assert data.order_total == 31.40


@pytest.mark.asyncio
async def test_scrape_confirmation_tolerates_missing_page(ctx):
    driver = FakePageDriver(scripts={"confirmation_hints": RuntimeError("navigated away")})

    data = await scrape_confirmation(driver, ctx)

    assert data.confirmation_number is None
