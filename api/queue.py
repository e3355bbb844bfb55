"""
RQ (Redis Queue) setup for the API service.

This module provides RQ queue configuration, probe job enqueueing and job
lookup. Jobs are enqueued by string path so the API never imports the
browser stack.
"""

from __future__ import annotations

from typing import Optional

import redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from shared.config import get_config
from shared.logging import get_logger

logger = get_logger(__name__)

PROBE_QUEUE_NAME = "probe_jobs"
PROBE_JOB_PATH = "checkout_engine.jobs.process_probe_job"


class QueueUnavailableError(RuntimeError):
    """Redis is not configured or cannot be reached."""


# Global Redis connection and queue (initialized on first use).
_redis_conn: Optional[redis.Redis] = None
_queue: Optional[Queue] = None


def get_redis_connection() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_conn
    if _redis_conn is None:
        config = get_config()
        if not config.redis_url:
            raise QueueUnavailableError(
                "REDIS_URL environment variable is required. "
                "Set it to a Redis connection string (e.g., redis://localhost:6379/0)."
            )
        _redis_conn = redis.from_url(config.redis_url)
    return _redis_conn


def get_queue() -> Queue:
    """Get or create the RQ queue."""
    global _queue
    if _queue is None:
        _queue = Queue(PROBE_QUEUE_NAME, connection=get_redis_connection())
    return _queue


def enqueue_probe_job(url: str, runs: Optional[int] = None) -> str:
    """
    Enqueue a probe job and return the RQ job id.

    Raises:
        QueueUnavailableError: If Redis is missing or the connection fails
    """
    config = get_config()
    try:
        job = get_queue().enqueue(
            PROBE_JOB_PATH,
            url,
            runs,
            job_timeout=config.probe_job_timeout_seconds,
        )
    except redis.RedisError as e:
        logger.error("redis_connection_failed", error=str(e), url=url)
        raise QueueUnavailableError(f"Failed to connect to Redis: {e}") from e

    logger.info("probe_job_enqueued", job_id=job.id, url=url, runs=runs)
    return job.id


def fetch_job(job_id: str) -> Optional[Job]:
    """
    Look up a job by id; None if RQ does not know it.

    Raises:
        QueueUnavailableError: If Redis is missing or the connection fails
    """
    try:
        return Job.fetch(job_id, connection=get_redis_connection())
    except NoSuchJobError:
        return None
    except redis.RedisError as e:
        logger.error("redis_connection_failed", error=str(e), job_id=job_id)
        raise QueueUnavailableError(f"Failed to connect to Redis: {e}") from e
