# src/dialectic/repositories/project_resource_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.project_resource import DialecticProjectResource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ProjectResourceRepository:

    @staticmethod
    def list_for_project(
        db: Session,
        *,
        project_id: str,
        session_id: str | None = None,
        resource_type: str | None = None,
        stage_slug: str | None = None,
        document_key: str | None = None,
        iteration_number: int | None = None,
    ) -> list[DialecticProjectResource]:
        with tracer.start_as_current_span("db.list_project_resources") as span:
            span.set_attribute("project.id", project_id)
            span.set_attribute("resource.type", resource_type or "")

            query = db.query(DialecticProjectResource).filter(
                DialecticProjectResource.project_id == project_id,
            )
            if session_id:
                query = query.filter(DialecticProjectResource.session_id == session_id)
            if resource_type:
                query = query.filter(DialecticProjectResource.resource_type == resource_type)
            if stage_slug:
                query = query.filter(DialecticProjectResource.stage_slug == stage_slug)
            if document_key:
                query = query.filter(DialecticProjectResource.document_key == document_key)
            if iteration_number is not None:
                query = query.filter(DialecticProjectResource.iteration_number == iteration_number)

            results = query.order_by(DialecticProjectResource.created_at.desc()).all()

        logger.debug("Listed %d project resource(s) for project=%s", len(results), project_id)
        return results

    @staticmethod
    def upsert_rendered_document(db: Session, **fields) -> DialecticProjectResource:
        """
        One rendered resource per (session, stage, iteration, document key, source
        document); re-rendering overwrites the row in place.
        """
        with tracer.start_as_current_span("db.upsert_rendered_document") as span:
            span.set_attribute("document.key", fields.get("document_key") or "")

            existing = (
                db.query(DialecticProjectResource)
                .filter(
                    DialecticProjectResource.project_id == fields["project_id"],
                    DialecticProjectResource.session_id == fields.get("session_id"),
                    DialecticProjectResource.stage_slug == fields.get("stage_slug"),
                    DialecticProjectResource.iteration_number == fields.get("iteration_number"),
                    DialecticProjectResource.resource_type == "rendered_document",
                    DialecticProjectResource.document_key == fields.get("document_key"),
                    DialecticProjectResource.file_name == fields.get("file_name"),
                )
                .first()
            )
            if existing:
                for name, value in fields.items():
                    setattr(existing, name, value)
                resource = existing
            else:
                resource = DialecticProjectResource(resource_type="rendered_document", **fields)
                db.add(resource)
            db.commit()
            db.refresh(resource)

        logger.info(
            "Saved rendered document resource id=%s document_key=%s (updated=%s)",
            resource.id,
            resource.document_key,
            existing is not None,
        )
        return resource

    @staticmethod
    def find_by_storage(db: Session, storage_path: str, file_name: str) -> DialecticProjectResource | None:
        return (
            db.query(DialecticProjectResource)
            .filter(
                DialecticProjectResource.storage_path == storage_path,
                DialecticProjectResource.file_name == file_name,
            )
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, resource_id: str) -> DialecticProjectResource | None:
        return db.query(DialecticProjectResource).filter(DialecticProjectResource.id == resource_id).first()
