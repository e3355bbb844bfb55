"""
Per-run context threaded through every stage.

Holds what would otherwise be module-level state: the run id and timer, the
current stage, flags that end up in telemetry, the screenshot directory,
timing ceilings and the cancellation event. One RunContext belongs to one
run; nothing here is shared between concurrent runs.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from checkout_engine.browser.constants import Timings
from checkout_engine.errors import RunCancelled
from checkout_engine.models import RunStage
from checkout_engine.telemetry import (
    RunType,
    StructlogTelemetryReporter,
    TelemetryRecord,
    TelemetryReporter,
)
from shared.logging import bind_request_context, get_logger

logger = get_logger(__name__)


class RunContext:
    def __init__(
        self,
        run_type: RunType,
        *,
        run_id: Optional[str] = None,
        domain: Optional[str] = None,
        timings: Optional[Timings] = None,
        screenshot_dir: Optional[Path] = None,
        reporter: Optional[TelemetryReporter] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.run_type = run_type
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.domain = domain
        self.timings = timings or Timings()
        self.screenshot_dir = screenshot_dir
        self.reporter = reporter or StructlogTelemetryReporter()

        self.stage = RunStage.INIT
        self.steps: list[dict[str, Any]] = []
        self.screenshots: list[str] = []
        self.metadata: dict[str, Any] = {}
        self.bot_detected = False
        self.proxy_used = False

        self._started = time.monotonic()
        self._cancel = cancel_event if cancel_event is not None else asyncio.Event()
        self._telemetry_emitted = False

    # --- stages ---

    def advance(self, stage: RunStage) -> None:
        """Move to a later stage. Stages never move backwards."""
        if stage.rank < self.stage.rank:
            raise ValueError(f"stage cannot move from {self.stage.value} back to {stage.value}")
        if stage is not self.stage:
            self.stage = stage
            bind_request_context(stage=stage.value)
            logger.info("run.stage", stage=stage.value, elapsed_ms=self.elapsed_ms)

    def step(self, name: str, **details: Any) -> None:
        """Record a completed step for post-run diagnosis."""
        entry = {"step": name, "stage": self.stage.value, "elapsed_ms": self.elapsed_ms, **details}
        self.steps.append(entry)
        logger.info("run.step", **entry)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    # --- cancellation ---

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise RunCancelled()

    async def sleep(self, ms: int) -> None:
        """Wait up to ms, waking early (and raising RunCancelled) on cancel."""
        self.check_cancelled()
        if ms <= 0:
            return
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=ms / 1000)
        except asyncio.TimeoutError:
            return
        raise RunCancelled()

    # --- teardown ---

    def finish(self, *, success: bool, fail_reason: Optional[str] = None) -> Optional[TelemetryRecord]:
        """Emit the telemetry record. Later calls are no-ops."""
        if self._telemetry_emitted:
            return None
        self._telemetry_emitted = True
        record = TelemetryRecord(
            run_type=self.run_type,
            success=success,
            stage=self.stage.value,
            bot_detected=self.bot_detected,
            proxy_used=self.proxy_used,
            duration_ms=self.elapsed_ms,
            fail_reason=fail_reason,
            metadata={"run_id": self.run_id, "domain": self.domain, **self.metadata},
        )
        try:
            self.reporter.emit(record)
        except Exception as e:
            logger.error("telemetry.emit_failed", error=str(e), error_type=type(e).__name__)
        return record
