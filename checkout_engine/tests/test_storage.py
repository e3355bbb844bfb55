"""
Unit tests for artifact storage, checkpoint screenshots and report writing.
"""

from __future__ import annotations

import hashlib
import json

import pytest

from checkout_engine.artifacts import JsonFileReportWriter, capture_checkpoint, screenshot_name
from checkout_engine.context import RunContext
from checkout_engine.models import (
    AddToCartReport,
    CheckoutReport,
    ConsistencyReport,
    MenuScrapeReport,
    PageLoadReport,
    ProbeResult,
)
from checkout_engine.storage import normalize_domain, target_slug, write_json, write_screenshot
from checkout_engine.tests.conftest import ZERO_TIMINGS
from checkout_engine.tests.fakes import FakePageDriver


def test_normalize_domain():
    assert normalize_domain("https://WWW.Example.com/menu") == "example.com"
    assert normalize_domain("order.example.com") == "order.example.com"
    assert normalize_domain("") == "unknown-domain"


def test_target_slug():
    assert target_slug("https://www.toasttab.com/local/order/sample-cafe") == "toasttab-com-local"
    assert target_slug("sample.square.site") == "sample-square-site"


def test_screenshot_name():
    assert screenshot_name("example-com", 2, "menu") == "example-com-run-2-menu.png"


def test_write_screenshot(tmp_path):
    path = tmp_path / "shots" / "a.png"
    size, checksum = write_screenshot(path, b"png-bytes")
    assert path.read_bytes() == b"png-bytes"
    assert size == 9
    assert checksum == hashlib.md5(b"png-bytes").hexdigest()


def test_write_json_is_pretty_utf8(tmp_path):
    path = tmp_path / "report.json"
    size, _ = write_json(path, {"name": "Café", "n": 1})
    text = path.read_text(encoding="utf-8")
    assert json.loads(text) == {"name": "Café", "n": 1}
    assert "\n  " in text
    assert size == len(text.encode("utf-8"))


@pytest.mark.asyncio
async def test_capture_checkpoint_records_relative_name(tmp_path):
    ctx = RunContext("probe", domain="example.com", timings=ZERO_TIMINGS, screenshot_dir=tmp_path)
    driver = FakePageDriver(url="https://example.com/menu")

    name = await capture_checkpoint(driver, ctx, "initial", run_number=3)

    assert name == "example-com-run-3-initial.png"
    assert (tmp_path / name).exists()
    assert ctx.screenshots == [name]


@pytest.mark.asyncio
async def test_capture_checkpoint_failure_never_raises(tmp_path):
    ctx = RunContext("probe", domain="example.com", timings=ZERO_TIMINGS, screenshot_dir=tmp_path)
    driver = FakePageDriver()
    driver.screenshot_error = RuntimeError("page crashed")

    assert await capture_checkpoint(driver, ctx, "menu") is None
    assert ctx.screenshots == []


@pytest.mark.asyncio
async def test_capture_checkpoint_without_directory(ctx):
    assert await capture_checkpoint(FakePageDriver(), ctx, "menu") is None


def test_json_report_writer(tmp_path):
    result = ProbeResult(
        target="https://order.example.com/menu",
        page_load=PageLoadReport(loaded=True, status=200),
        menu_scrape=MenuScrapeReport(),
        add_to_cart=AddToCartReport(),
        checkout=CheckoutReport(),
        consistency=ConsistencyReport(runs_completed=1, runs_successful=1),
        injectability_score=40,
        recommendation="human-ops-only",
    )

    path = JsonFileReportWriter(tmp_path / "reports").write(result)

    assert path.startswith(str(tmp_path / "reports" / "order-example-com-menu-"))
    data = json.loads(open(path, encoding="utf-8").read())
    assert data["injectabilityScore"] == 40
    assert data["pageLoad"]["loaded"] is True
