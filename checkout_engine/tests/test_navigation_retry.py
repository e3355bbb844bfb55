"""
Unit tests for navigation retry: backoff, failure classification, blocks.

No Playwright browser required; goto outcomes are scripted on a fake driver.
"""

from __future__ import annotations

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from checkout_engine.browser.driver import NavigationResponse
from checkout_engine.browser.navigation_retry import backoff_ms, classify_failure, navigate_with_retry
from checkout_engine.errors import NavigationFailure
from checkout_engine.tests.fakes import CHALLENGE_SIGNALS, FakePageDriver

URL = "https://order.example.com/menu"


def test_backoff_is_linear():
    assert [backoff_ms(n, 2000) for n in (1, 2, 3)] == [2000, 4000, 6000]


def test_classify_failure():
    assert classify_failure(PlaywrightTimeoutError("Timeout 60000ms exceeded")) == (True, "navigation_timeout")
    assert classify_failure(Exception("net::ERR_PROXY_CONNECTION_FAILED at https://x")) == (True, "proxy_error")
    assert classify_failure(Exception("net::ERR_CONNECTION_RESET")) == (True, "net_err")
    assert classify_failure(ValueError("bad url")) == (False, "non_retryable")


@pytest.mark.asyncio
async def test_navigate_succeeds_first_attempt(ctx):
    driver = FakePageDriver(
        goto_plan=[NavigationResponse(status=200, headers={"server": "cloudflare", "content-type": "text/html"})]
    )
    result = await navigate_with_retry(driver, URL, ctx=ctx)
    assert result.attempts == 1
    assert result.status == 200
    assert result.blocked is False
    assert result.waf_headers == {"server": "cloudflare"}
    assert ctx.bot_detected is False


@pytest.mark.asyncio
async def test_navigate_retries_transport_errors(ctx):
    driver = FakePageDriver(
        goto_plan=[
            PlaywrightTimeoutError("Timeout 60000ms exceeded"),
            Exception("net::ERR_CONNECTION_RESET"),
            NavigationResponse(status=200),
        ]
    )
    result = await navigate_with_retry(driver, URL, ctx=ctx)
    assert result.attempts == 3
    assert len(driver.goto_calls) == 3


@pytest.mark.asyncio
async def test_navigate_raises_after_exhausting_attempts(ctx):
    driver = FakePageDriver(goto_plan=[Exception("net::ERR_NAME_NOT_RESOLVED")] * 3)
    with pytest.raises(NavigationFailure) as exc_info:
        await navigate_with_retry(driver, URL, ctx=ctx)
    assert exc_info.value.attempts == 3
    assert "ERR_NAME_NOT_RESOLVED" in exc_info.value.last_error


@pytest.mark.asyncio
async def test_navigate_non_retryable_fails_immediately(ctx):
    driver = FakePageDriver(goto_plan=[ValueError("invalid url")])
    with pytest.raises(NavigationFailure) as exc_info:
        await navigate_with_retry(driver, URL, ctx=ctx)
    assert exc_info.value.attempts == 1
    assert len(driver.goto_calls) == 1


@pytest.mark.asyncio
async def test_block_returned_without_retry_by_default(ctx):
    driver = FakePageDriver(scripts={"bot_signals": CHALLENGE_SIGNALS})
    result = await navigate_with_retry(driver, URL, ctx=ctx)
    assert result.blocked is True
    assert result.attempts == 1
    assert ctx.bot_detected is True


@pytest.mark.asyncio
async def test_block_retried_when_requested(ctx):
    driver = FakePageDriver(scripts={"bot_signals": CHALLENGE_SIGNALS})
    result = await navigate_with_retry(driver, URL, ctx=ctx, retry_on_block=True)
    assert result.blocked is True
    assert result.attempts == 3
    assert len(driver.goto_calls) == 3


@pytest.mark.asyncio
async def test_block_clears_on_retry(ctx):
    answers = iter([CHALLENGE_SIGNALS, {"iframeSrcs": [], "markers": []}])
    driver = FakePageDriver(scripts={"bot_signals": lambda params: next(answers)})
    result = await navigate_with_retry(driver, URL, ctx=ctx, retry_on_block=True)
    assert result.blocked is False
    assert result.attempts == 2
