"""
Pydantic schemas for API request/response contracts.

Orders use the engine's own OrderRequest/OrderResult models directly; the
probe endpoints wrap queue state around ProbeResult.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

ProbeJobStatus = Literal["queued", "started", "deferred", "scheduled", "finished", "failed", "stopped", "canceled"]


class CreateProbeRequest(BaseModel):
    """Request schema for POST /probes."""

    url: HttpUrl = Field(..., description="Ordering page to probe (must be a valid HTTP/HTTPS URL)")
    runs: Optional[int] = Field(
        default=None,
        ge=1,
        le=5,
        description="Number of probe runs; defaults to PROBE_RUNS",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | HttpUrl) -> str:
        """Normalize URL to a consistent string format."""
        if isinstance(v, HttpUrl):
            return str(v)
        return str(v).strip()


class CreateProbeResponse(BaseModel):
    """Response schema for POST /probes."""

    job_id: str
    status: Literal["queued"] = "queued"


class ProbeJobResponse(BaseModel):
    """Response schema for GET /probes/{job_id}."""

    job_id: str
    status: ProbeJobStatus
    result: Optional[dict[str, Any]] = None
    error_summary: Optional[str] = None
