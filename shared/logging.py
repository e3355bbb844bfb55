"""
Structured logging setup for the checkout automation engine.

All runtime logging goes through structlog. The API, the RQ worker and the
CLI scripts share this baseline.

Key principles:
- Logs are structured JSON and include contextual fields.
- Context is bound per run (run_id, run_type, domain, stage) through
  contextvars, so concurrent runs in one process do not bleed into each other.
- Configuration happens once per process, never ad hoc in modules.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import structlog


def _build_shared_processors() -> list[structlog.types.Processor]:
    """Processors shared by every entrypoint."""

    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.EventRenamer("message"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def _handler(stream_or_path: Union[Path, Any], level: int) -> logging.Handler:
    if isinstance(stream_or_path, Path):
        stream_or_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(stream_or_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(stream_or_path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def resolve_level(level: Union[int, str]) -> int:
    """Accept either a logging constant or a name such as "debug"."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    log_stdout: bool = True,
) -> None:
    """
    Configure structlog and the standard logging module.

    - log_stdout adds a stdout handler.
    - log_file adds a file handler (parent dir created if needed).
    - With neither, stdout is used so the process never has zero handlers.
    """

    numeric_level = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    if log_stdout:
        root.addHandler(_handler(sys.stdout, numeric_level))
    if log_file:
        root.addHandler(_handler(Path(log_file), numeric_level))
    if not root.handlers:
        root.addHandler(_handler(sys.stdout, numeric_level))

    structlog.configure(
        processors=_build_shared_processors(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Obtain a structured logger.

    Usage:
        from shared.logging import get_logger, bind_request_context

        logger = get_logger(__name__)
        bind_request_context(run_id="...", run_type="probe")
        logger.info("navigation.attempt", attempt=1)
    """

    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_request_context(
    *,
    run_id: Optional[str] = None,
    run_type: Optional[str] = None,
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    **extra: Any,
) -> Mapping[str, Any]:
    """
    Bind common context fields for run logging.

    None values are dropped so logs stay concise. Rebinding a key (e.g. stage
    as a run advances) overwrites the previous value.
    """

    context: dict[str, Any] = {
        "run_id": run_id,
        "run_type": run_type,
        "domain": domain,
        "stage": stage,
        **extra,
    }
    filtered_context = {k: v for k, v in context.items() if v is not None}

    structlog.contextvars.bind_contextvars(**filtered_context)
    return filtered_context


def clear_request_context() -> None:
    """Drop all bound run context (call when a run finishes)."""
    structlog.contextvars.clear_contextvars()
