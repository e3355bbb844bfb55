"""
Navigation retry helper: linear backoff, failure classification, bot-block check.

Transport errors (timeouts, net::ERR_*) are retried with `attempt * base_delay`
backoff; exhausting attempts raises NavigationFailure with the last error. A
page that loads but shows a challenge is not a transport error: it comes back
as `blocked=True` and the caller decides. Order runs pass retry_on_block so a
block is re-attempted with the same backoff before giving up.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from checkout_engine.browser.bot_detection import classify, pick_waf_headers
from checkout_engine.browser.constants import Timings
from checkout_engine.browser.driver import NavigationResponse, PageDriver
from checkout_engine.errors import NavigationFailure
from checkout_engine.models import BotBlockSignal
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.context import RunContext

logger = get_logger(__name__)


@dataclass
class NavigateResult:
    """Result of navigate_with_retry."""

    response: Optional[NavigationResponse]
    attempts: int
    signal: BotBlockSignal
    waf_headers: dict[str, str] = field(default_factory=dict)

    @property
    def blocked(self) -> bool:
        return self.signal.blocked

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response else None


def backoff_ms(attempt: int, base_delay_ms: int) -> int:
    """Linear backoff for 1-based attempt index."""
    return attempt * base_delay_ms


def classify_failure(exc: BaseException) -> tuple[bool, str]:
    """
    Classify a navigation exception as (retryable, reason).

    Reason is one of: navigation_timeout, proxy_error, net_err, non_retryable.
    """
    if isinstance(exc, PlaywrightTimeoutError):
        return True, "navigation_timeout"
    msg = (getattr(exc, "message", None) or str(exc)).lower()
    if "err_proxy" in msg or "err_tunnel" in msg:
        return True, "proxy_error"
    if "net::err_" in msg:
        return True, "net_err"
    return False, "non_retryable"


async def _wait(ctx: Optional["RunContext"], ms: int) -> None:
    if ctx is not None:
        await ctx.sleep(ms)
    elif ms > 0:
        await asyncio.sleep(ms / 1000)


async def navigate_with_retry(
    driver: PageDriver,
    url: str,
    *,
    ctx: Optional["RunContext"] = None,
    max_attempts: Optional[int] = None,
    timings: Optional[Timings] = None,
    retry_on_block: bool = False,
) -> NavigateResult:
    """
    Load url with retries, wait the settle delay, then classify bot-block state.

    Raises NavigationFailure once every attempt failed at the transport level.
    """
    timings = timings or (ctx.timings if ctx is not None else Timings())
    attempts_allowed = max_attempts or timings.nav_max_attempts
    last_error = "unknown error"
    result: Optional[NavigateResult] = None

    for attempt in range(1, attempts_allowed + 1):
        logger.info("navigation.attempt", attempt=attempt, url=url)
        try:
            response = await driver.goto(url, timeout_ms=timings.nav_timeout_ms)
        except Exception as e:
            retryable, reason = classify_failure(e)
            last_error = str(e).splitlines()[0][:300] if str(e) else type(e).__name__
            if retryable and attempt < attempts_allowed:
                delay = backoff_ms(attempt, timings.nav_base_delay_ms)
                logger.info(
                    "navigation.retry",
                    attempt=attempt,
                    url=url,
                    failure_classification=reason,
                    backoff_ms=delay,
                    error=last_error,
                )
                await _wait(ctx, delay)
                continue
            logger.error(
                "navigation.failed",
                attempt=attempt,
                url=url,
                failure_classification=reason,
                error=last_error,
            )
            raise NavigationFailure(url, attempt, last_error) from e

        await _wait(ctx, timings.settle_ms)
        signal = await classify(driver)
        result = NavigateResult(
            response=response,
            attempts=attempt,
            signal=signal,
            waf_headers=pick_waf_headers(response.headers if response else None),
        )
        if ctx is not None and signal.blocked:
            ctx.bot_detected = True

        if signal.blocked and retry_on_block and attempt < attempts_allowed:
            delay = backoff_ms(attempt, timings.nav_base_delay_ms)
            logger.info(
                "navigation.retry",
                attempt=attempt,
                url=url,
                failure_classification="bot_block",
                block_type=signal.type,
                backoff_ms=delay,
            )
            await _wait(ctx, delay)
            continue
        break

    if result is None:
        raise NavigationFailure(url, attempts_allowed, last_error)
    logger.info(
        "navigation.success" if not result.blocked else "navigation.blocked",
        attempts=result.attempts,
        url=url,
        status=result.status,
        block_type=result.signal.type,
    )
    return result
