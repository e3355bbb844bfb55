"""
Run telemetry: one structured record per run, emitted once at teardown.

Where the record is stored is up to the consumer; the default reporter writes
it as a single structlog event so log shippers can pick it up.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Protocol

from shared.logging import get_logger

logger = get_logger(__name__)

RunType = Literal["order", "probe"]


@dataclass
class TelemetryRecord:
    run_type: RunType
    success: bool
    stage: str
    bot_detected: bool
    proxy_used: bool
    duration_ms: int
    fail_reason: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class TelemetryReporter(Protocol):
    def emit(self, record: TelemetryRecord) -> None: ...


class StructlogTelemetryReporter:
    """Default reporter: the record becomes one `bot_run.telemetry` log line."""

    def emit(self, record: TelemetryRecord) -> None:
        logger.info("bot_run.telemetry", **record.as_dict())


class CollectingTelemetryReporter:
    """Keeps records in memory (tests, CLI summaries)."""

    def __init__(self) -> None:
        self.records: list[TelemetryRecord] = []

    def emit(self, record: TelemetryRecord) -> None:
        self.records.append(record)
