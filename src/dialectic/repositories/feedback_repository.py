# src/dialectic/repositories/feedback_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.feedback import DialecticFeedback

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FeedbackRepository:

    @staticmethod
    def list_for_session(
        db: Session,
        *,
        session_id: str,
        stage_slug: str | None = None,
        iteration_number: int | None = None,
        document_key: str | None = None,
    ) -> list[DialecticFeedback]:
        with tracer.start_as_current_span("db.list_feedback") as span:
            span.set_attribute("session.id", session_id)

            query = db.query(DialecticFeedback).filter(DialecticFeedback.session_id == session_id)
            if stage_slug:
                query = query.filter(DialecticFeedback.stage_slug == stage_slug)
            if iteration_number is not None:
                query = query.filter(DialecticFeedback.iteration_number == iteration_number)
            if document_key:
                query = query.filter(DialecticFeedback.document_key == document_key)

            results = query.order_by(DialecticFeedback.created_at.desc()).all()

        logger.debug("Listed %d feedback row(s) for session=%s", len(results), session_id)
        return results

    @staticmethod
    def find_by_storage(db: Session, storage_path: str, file_name: str) -> DialecticFeedback | None:
        return (
            db.query(DialecticFeedback)
            .filter(
                DialecticFeedback.storage_path == storage_path,
                DialecticFeedback.file_name == file_name,
            )
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, feedback_id: str) -> DialecticFeedback | None:
        return db.query(DialecticFeedback).filter(DialecticFeedback.id == feedback_id).first()
