# src/dialectic/worker.py

"""
Job worker loop.

Each iteration claims one runnable job (row-locked, skip-locked) and runs
it to completion; any number of workers can poll the same table.
"""

import logging
import os
import time

from dotenv import load_dotenv
from opentelemetry import trace

from dialectic.db.database import SessionLocal
from dialectic.logging_config import configure_logging
from dialectic.repositories.generation_job_repository import GenerationJobRepository
from dialectic.services.job_dependencies import build_default_dependencies
from dialectic.services.job_dispatcher import process_job
from dialectic.tracing import configure_tracing

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def run_once(session_factory=SessionLocal, dependencies_factory=build_default_dependencies) -> bool:
    """Claim and process a single job. Returns False when the queue was empty."""
    db = session_factory()
    try:
        job = GenerationJobRepository.claim_next(db)
        if job is None:
            return False
        process_job(db, job, dependencies_factory(db))
        return True
    finally:
        db.close()


def run_worker(
    poll_interval: float | None = None,
    max_jobs: int | None = None,
    session_factory=SessionLocal,
    dependencies_factory=build_default_dependencies,
) -> int:
    """
    Poll until `max_jobs` jobs have been processed (forever when None).
    Sleeps `poll_interval` seconds whenever the queue is empty.
    """
    if poll_interval is None:
        poll_interval = float(os.getenv("DIALECTIC_WORKER_POLL_INTERVAL", "5"))

    processed = 0
    logger.info("Worker started (poll_interval=%ss)", poll_interval)
    while max_jobs is None or processed < max_jobs:
        try:
            if run_once(session_factory, dependencies_factory):
                processed += 1
                continue
        except Exception:
            # Keep polling; the job row keeps whatever state it reached.
            logger.exception("Worker iteration failed")
        time.sleep(poll_interval)

    logger.info("Worker stopping after %d job(s)", processed)
    return processed


def main():
    load_dotenv()
    configure_logging()
    configure_tracing()
    run_worker()


if __name__ == "__main__":
    main()
