"""
Read-only job status routes.

Endpoints:
- GET /jobs/{job_id} - Status snapshot of a generation job
- GET /jobs/{job_id}/children - Child jobs of a PLAN job
"""

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from dialectic.db.database import get_db
from dialectic.repositories.generation_job_repository import GenerationJobRepository

router = APIRouter(prefix="/jobs", tags=["jobs"])
tracer = trace.get_tracer(__name__)


class JobStatusResponse(BaseModel):
    """Status snapshot of a generation job."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_job_id: Optional[str] = None
    session_id: str
    stage_slug: str
    iteration_number: int
    job_type: str
    status: str
    attempt_count: int
    max_retries: int
    results: Optional[dict[str, Any]] = None
    error_details: Optional[dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def _get_job_or_404(db: Session, job_id: str):
    job = GenerationJobRepository.get_by_id(db, job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    return job


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: str, db: Session = Depends(get_db)):
    with tracer.start_as_current_span("get_job") as span:
        span.set_attribute("job.id", job_id)
        return _get_job_or_404(db, job_id)


@router.get("/{job_id}/children", response_model=List[JobStatusResponse])
def list_job_children(job_id: str, db: Session = Depends(get_db)):
    with tracer.start_as_current_span("list_job_children") as span:
        span.set_attribute("job.id", job_id)
        _get_job_or_404(db, job_id)
        return GenerationJobRepository.list_children(db, job_id)
