# src/dialectic/repositories/generation_job_repository.py

from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from dialectic.models.generation_job import GenerationJob, JobStatus
import logging
from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class GenerationJobRepository:

    @staticmethod
    def create(
        db: Session,
        *,
        session_id: str,
        user_id: str,
        stage_slug: str,
        iteration_number: int,
        job_type: str,
        payload: dict,
        parent_job_id: str | None = None,
        status: str = JobStatus.PENDING,
        max_retries: int = 3,
        is_test_job: bool = False,
    ) -> GenerationJob:

        job = GenerationJob(
            session_id=session_id,
            user_id=user_id,
            stage_slug=stage_slug,
            iteration_number=iteration_number,
            job_type=job_type,
            payload=payload,
            parent_job_id=parent_job_id,
            status=status,
            max_retries=max_retries,
            is_test_job=is_test_job,
        )

        with tracer.start_as_current_span("db.create_generation_job") as span:
            span.set_attribute("session.id", session_id)
            span.set_attribute("job.type", job_type)

            db.add(job)
            db.commit()
            db.refresh(job)

        logger.info(
            "Created %s job id=%s session=%s stage=%s",
            job_type,
            getattr(job, "id", "?"),
            session_id,
            stage_slug,
        )
        return job

    @staticmethod
    def insert_many(db: Session, jobs: list[GenerationJob]) -> list[GenerationJob]:
        """Persist a batch of child rows in one commit."""
        with tracer.start_as_current_span("db.insert_generation_jobs") as span:
            span.set_attribute("job.count", len(jobs))

            db.add_all(jobs)
            db.commit()
            for job in jobs:
                db.refresh(job)

        logger.info(
            "Inserted %d job(s) for parent=%s",
            len(jobs),
            jobs[0].parent_job_id if jobs else None,
        )
        return jobs

    @staticmethod
    def get_by_id(db: Session, job_id: str) -> GenerationJob | None:
        with tracer.start_as_current_span("db.get_generation_job") as span:
            span.set_attribute("job.id", job_id)

            result = (
                db.query(GenerationJob)
                .filter(GenerationJob.id == job_id)
                .first()
            )

        logger.debug("Fetched generation job id=%s -> %s", job_id, getattr(result, "id", None))
        return result

    @staticmethod
    def list_children(db: Session, parent_job_id: str) -> list[GenerationJob]:
        with tracer.start_as_current_span("db.list_child_jobs") as span:
            span.set_attribute("job.parent_id", parent_job_id)

            results = (
                db.query(GenerationJob)
                .filter(GenerationJob.parent_job_id == parent_job_id)
                .order_by(GenerationJob.created_at.asc())
                .all()
            )

        logger.debug("Listed %d child job(s) for parent=%s", len(results), parent_job_id)
        return results

    @staticmethod
    def update(db: Session, job_id: str, **fields) -> GenerationJob | None:
        """Apply column updates to one job row and commit."""
        with tracer.start_as_current_span("db.update_generation_job") as span:
            span.set_attribute("job.id", job_id)
            if "status" in fields:
                span.set_attribute("job.new_status", fields["status"])

            job = (
                db.query(GenerationJob)
                .filter(GenerationJob.id == job_id)
                .first()
            )
            if not job:
                return None

            for name, value in fields.items():
                setattr(job, name, value)
            if fields.get("status") in JobStatus.TERMINAL and "completed_at" not in fields:
                job.completed_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(job)

        logger.info("Updated job %s fields=%s status=%s", job_id, sorted(fields), job.status)
        return job

    @staticmethod
    def claim_next(db: Session) -> GenerationJob | None:
        """
        Lock and mark the oldest runnable job as processing.

        A job with a prerequisite is runnable only once that prerequisite completed.
        """
        with tracer.start_as_current_span("db.claim_next_generation_job") as span:
            completed_ids = select(GenerationJob.id).where(GenerationJob.status == JobStatus.COMPLETED)
            job = (
                db.query(GenerationJob)
                .filter(
                    GenerationJob.status.in_(JobStatus.RUNNABLE),
                    or_(
                        GenerationJob.prerequisite_job_id.is_(None),
                        GenerationJob.prerequisite_job_id.in_(completed_ids),
                    ),
                )
                .order_by(GenerationJob.created_at.asc())
                .with_for_update(skip_locked=True)
                .first()
            )
            if not job:
                return None

            span.set_attribute("job.id", job.id)
            span.set_attribute("job.type", job.job_type)
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(job)

        logger.info("Claimed %s job id=%s", job.job_type, job.id)
        return job
