from sqlalchemy import Boolean, Column, DateTime, Integer, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class JobType:
    PLAN = "PLAN"
    EXECUTE = "EXECUTE"
    RENDER = "RENDER"

    ALL = (PLAN, EXECUTE, RENDER)


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    WAITING_FOR_CHILDREN = "waiting_for_children"
    PENDING_NEXT_STEP = "pending_next_step"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = (COMPLETED, FAILED)
    RUNNABLE = (PENDING, PENDING_NEXT_STEP)


class GenerationJob(Base, AuditMixin):
    """
    One unit of queued work.

    Jobs form a tree through parent_job_id; the tree is walked by id lookups,
    never by in-memory references, so any worker can resume it.
    """
    __tablename__ = "generation_jobs"

    id = uuid_pk()
    parent_job_id = uuid_fk("generation_jobs", nullable=True)
    prerequisite_job_id = uuid_fk("generation_jobs", nullable=True, ondelete="SET NULL")
    target_contribution_id = Column(String(36), nullable=True)

    session_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    stage_slug = Column(String(100), nullable=False)
    iteration_number = Column(Integer, nullable=False, default=1)

    job_type = Column(String(20), nullable=False)
    status = Column(String(40), nullable=False, default=JobStatus.PENDING, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    payload = Column(JSON, nullable=False, default=dict)
    results = Column(JSON, nullable=True)
    error_details = Column(JSON, nullable=True)

    is_test_job = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
