"""
RQ job handlers for probe processing.

Thin entrypoint: build config, bind log context, run the async probe to
completion, write the report. Exceptions are logged and re-raised so RQ
marks the job failed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from checkout_engine.artifacts import JsonFileReportWriter
from checkout_engine.errors import get_user_safe_error_summary
from checkout_engine.probe import run_probe
from checkout_engine.storage import normalize_domain, target_slug
from shared.config import get_config
from shared.logging import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)


def process_probe_job(url: str, runs: Optional[int] = None) -> dict:
    """
    RQ job handler: probe `url` and return the ProbeResult as JSON-ready data.

    The return value is stored by RQ as the job result, which is what
    GET /probes/{job_id} reads back.
    """
    config = get_config()
    bind_request_context(run_type="probe", domain=normalize_domain(url))
    logger.info("probe_job_started", url=url, runs=runs or config.probe_runs)

    try:
        result = asyncio.run(
            run_probe(
                url,
                runs=runs,
                config=config,
                report_writer=JsonFileReportWriter(config.reports_dir),
                screenshot_dir=Path(config.artifacts_dir) / target_slug(url),
            )
        )
    except Exception as e:
        logger.error(
            "probe_job_error",
            error=str(e),
            error_type=type(e).__name__,
            summary=get_user_safe_error_summary(e, fallback="Probe failed"),
        )
        raise
    finally:
        clear_request_context()

    logger.info(
        "probe_job_completed",
        url=url,
        score=result.injectability_score,
        recommendation=result.recommendation,
    )
    return result.model_dump(mode="json", by_alias=True)
