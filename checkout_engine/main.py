"""
Worker entrypoint for processing probe jobs from RQ.

This module starts an RQ worker that consumes jobs from the "probe_jobs" queue.
"""

from __future__ import annotations

import sys

import redis
from dotenv import load_dotenv
from rq import Queue, Worker

from shared.config import get_config
from shared.logging import configure_logging, get_logger

load_dotenv()

PROBE_QUEUE_NAME = "probe_jobs"


def main() -> None:
    """Start the RQ worker."""
    config = get_config()
    configure_logging(
        level=config.log_level,
        log_file=config.log_file,
        log_stdout=config.log_stdout,
    )

    logger = get_logger(__name__)

    if not config.redis_url:
        logger.error("redis_url_not_configured")
        print("ERROR: REDIS_URL environment variable is required.", file=sys.stderr)
        sys.exit(1)

    try:
        redis_conn = redis.from_url(config.redis_url)
        redis_conn.ping()
    except Exception as e:
        logger.error("redis_connection_failed", error=str(e))
        print(f"ERROR: Failed to connect to Redis: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info("worker_starting", redis_url=config.redis_url, headless=config.headless)

    queue = Queue(PROBE_QUEUE_NAME, connection=redis_conn)
    worker = Worker([queue], connection=redis_conn, name="probe_worker")

    logger.info("worker_ready", queue_name=PROBE_QUEUE_NAME)
    print(f"Worker started. Listening for jobs on queue '{PROBE_QUEUE_NAME}'...")
    print("Press Ctrl+C to stop.")

    try:
        worker.work()
    except KeyboardInterrupt:
        logger.info("worker_stopping")
        print("\nWorker stopped.")


if __name__ == "__main__":
    main()
