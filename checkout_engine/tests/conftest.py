"""Shared fixtures for engine tests: zero-wait timings and a fresh RunContext."""

from __future__ import annotations

import pytest

from checkout_engine.browser.constants import Timings
from checkout_engine.context import RunContext
from checkout_engine.telemetry import CollectingTelemetryReporter

ZERO_TIMINGS = Timings(
    settle_ms=0,
    short_wait_ms=0,
    control_wait_ms=0,
    nav_timeout_ms=1000,
    nav_base_delay_ms=0,
    nav_max_attempts=3,
    cart_poll_ms=0,
    cart_advance_timeout_ms=0,
    prompt_settle_ms=0,
    autocomplete_wait_ms=0,
    confirmation_timeout_ms=0,
)


@pytest.fixture
def timings() -> Timings:
    return ZERO_TIMINGS


@pytest.fixture
def reporter() -> CollectingTelemetryReporter:
    return CollectingTelemetryReporter()


@pytest.fixture
def ctx(reporter) -> RunContext:
    return RunContext("order", run_id="test-run", domain="order.example.com", timings=ZERO_TIMINGS, reporter=reporter)
