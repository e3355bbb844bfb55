"""
Checkpoint screenshots and probe report writing.

Screenshots are taken at fixed checkpoints (initial, menu, add_to_cart,
checkout) into the caller's directory and referenced by relative path in the
result. A capture failure is logged and never fails the run.

Probe results go to a ReportWriter; JsonFileReportWriter is the default and
writes one pretty-printed JSON file per probe.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Literal, Optional, Protocol

from checkout_engine.models import ProbeResult
from checkout_engine.storage import target_slug, utc_stamp, write_json, write_screenshot
from shared.logging import get_logger

if TYPE_CHECKING:
    from checkout_engine.browser.driver import PageDriver
    from checkout_engine.context import RunContext

logger = get_logger(__name__)

Checkpoint = Literal["initial", "menu", "add_to_cart", "checkout", "payment", "confirmation", "failure"]


def screenshot_name(slug: str, run_number: int, checkpoint: Checkpoint) -> str:
    return f"{slug}-run-{run_number}-{checkpoint}.png"


async def capture_checkpoint(
    driver: "PageDriver",
    ctx: "RunContext",
    checkpoint: Checkpoint,
    *,
    run_number: int = 1,
) -> Optional[str]:
    """
    Screenshot the page into ctx.screenshot_dir.

    Returns the path relative to that directory, or None when no directory is
    configured or the capture failed.
    """
    if ctx.screenshot_dir is None:
        return None
    name = screenshot_name(target_slug(ctx.domain or driver.url), run_number, checkpoint)
    try:
        image = await driver.screenshot()
        size, checksum = write_screenshot(Path(ctx.screenshot_dir) / name, image)
    except Exception as e:
        logger.warning(
            "artifact_write_failed",
            artifact_type="screenshot",
            checkpoint=checkpoint,
            error=str(e)[:200],
            error_type=type(e).__name__,
        )
        return None
    ctx.screenshots.append(name)
    logger.info("artifact_saved", artifact_type="screenshot", checkpoint=checkpoint, size_bytes=size, checksum=checksum)
    return name


class ReportWriter(Protocol):
    def write(self, result: ProbeResult) -> str: ...


class JsonFileReportWriter:
    """Writes `{reports_dir}/{slug}-{timestamp}.json` and returns the path."""

    def __init__(self, reports_dir: str | Path) -> None:
        self.reports_dir = Path(reports_dir)

    def write(self, result: ProbeResult) -> str:
        path = self.reports_dir / f"{target_slug(result.target)}-{utc_stamp()}.json"
        size, checksum = write_json(path, result.model_dump(mode="json", by_alias=True))
        logger.info("probe_report_saved", path=str(path), size_bytes=size, checksum=checksum)
        return str(path)
