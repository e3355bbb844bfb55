"""
Route handlers for injectability probe endpoints.

Probes take minutes (several browser runs with cooldowns), so they are
enqueued on RQ and polled by job id.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from api.queue import QueueUnavailableError, enqueue_probe_job, fetch_job
from api.schemas import CreateProbeRequest, CreateProbeResponse, ProbeJobResponse
from shared.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/probes", tags=["probes"])


@router.post(
    "",
    response_model=CreateProbeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue an injectability probe",
)
def create_probe(request: CreateProbeRequest) -> CreateProbeResponse:
    """Enqueue a probe job for the URL and return its job id."""
    url = str(request.url)
    try:
        job_id = enqueue_probe_job(url, request.runs)
    except QueueUnavailableError as e:
        logger.error("job_enqueue_error", error=str(e), url=url)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to enqueue probe job. Please try again later.",
        )
    return CreateProbeResponse(job_id=job_id)


@router.get(
    "/{job_id}",
    response_model=ProbeJobResponse,
    summary="Get probe job status and result",
)
def get_probe(job_id: str) -> ProbeJobResponse:
    """
    Report the RQ job status for a probe.

    The ProbeResult is included once the job has finished. Failed jobs carry
    only a generic summary; the traceback stays in the worker logs.
    """
    try:
        job = fetch_job(job_id)
    except QueueUnavailableError as e:
        logger.error("job_fetch_error", error=str(e), job_id=job_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Probe queue is unavailable. Please try again later.",
        )

    job_status = job.get_status() if job is not None else None
    if job_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Probe job {job_id} not found",
        )

    # JobStatus is a str enum; plain strings pass through
    job_status = getattr(job_status, "value", job_status)
    response = ProbeJobResponse(job_id=job_id, status=job_status)
    if job_status == "finished":
        response.result = job.return_value()
    elif job_status == "failed":
        response.error_summary = "Probe failed"
    return response
