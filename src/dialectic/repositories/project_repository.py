# src/dialectic/repositories/project_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.project import DialecticProject

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ProjectRepository:

    @staticmethod
    def get_by_id(db: Session, project_id: str) -> DialecticProject | None:
        with tracer.start_as_current_span("db.get_project") as span:
            span.set_attribute("project.id", project_id)
            return (
                db.query(DialecticProject)
                .filter(DialecticProject.id == project_id)
                .first()
            )

    @staticmethod
    def get_owner_user_id(db: Session, project_id: str | None) -> str | None:
        if not project_id:
            return None
        project = ProjectRepository.get_by_id(db, project_id)
        if project is None:
            logger.warning("Project %s not found; notifications will be suppressed", project_id)
            return None
        return project.user_id
