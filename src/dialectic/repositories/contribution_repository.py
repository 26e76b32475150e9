# src/dialectic/repositories/contribution_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.contribution import DialecticContribution

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ContributionRepository:

    @staticmethod
    def create(db: Session, **fields) -> DialecticContribution:
        contribution = DialecticContribution(**fields)

        with tracer.start_as_current_span("db.create_contribution") as span:
            span.set_attribute("session.id", fields.get("session_id") or "")
            span.set_attribute("stage.slug", fields.get("stage") or "")
            span.set_attribute("document.key", fields.get("document_key") or "")

            db.add(contribution)
            db.commit()
            db.refresh(contribution)

        logger.info(
            "Created contribution id=%s stage=%s document_key=%s continuation=%s",
            contribution.id,
            contribution.stage,
            contribution.document_key,
            contribution.continuation_count,
        )
        return contribution

    @staticmethod
    def get_by_id(db: Session, contribution_id: str) -> DialecticContribution | None:
        with tracer.start_as_current_span("db.get_contribution") as span:
            span.set_attribute("contribution.id", contribution_id)
            return (
                db.query(DialecticContribution)
                .filter(DialecticContribution.id == contribution_id)
                .first()
            )

    @staticmethod
    def list_for_stage(
        db: Session,
        *,
        session_id: str,
        iteration_number: int | None = None,
        stage: str | None = None,
        document_key: str | None = None,
        contribution_type: str | None = None,
    ) -> list[DialecticContribution]:
        """Latest-edit contributions for a session, newest first."""
        with tracer.start_as_current_span("db.list_contributions") as span:
            span.set_attribute("session.id", session_id)

            query = db.query(DialecticContribution).filter(
                DialecticContribution.session_id == session_id,
                DialecticContribution.is_latest_edit.is_(True),
            )
            if iteration_number is not None:
                query = query.filter(DialecticContribution.iteration_number == iteration_number)
            if stage:
                query = query.filter(DialecticContribution.stage == stage)
            if document_key:
                query = query.filter(DialecticContribution.document_key == document_key)
            if contribution_type:
                query = query.filter(DialecticContribution.contribution_type == contribution_type)

            results = query.order_by(DialecticContribution.created_at.desc()).all()

        logger.debug("Listed %d contribution(s) for session=%s stage=%s", len(results), session_id, stage)
        return results

    @staticmethod
    def list_document_chain(db: Session, root: DialecticContribution) -> list[DialecticContribution]:
        """
        The root contribution followed by every continuation chunk whose
        document_relationships point back at it, in continuation order.
        """
        with tracer.start_as_current_span("db.list_document_chain") as span:
            span.set_attribute("contribution.root_id", root.id)

            siblings = (
                db.query(DialecticContribution)
                .filter(
                    DialecticContribution.session_id == root.session_id,
                    DialecticContribution.stage == root.stage,
                    DialecticContribution.iteration_number == root.iteration_number,
                )
                .all()
            )

        chunks = [
            c for c in siblings
            if c.id != root.id and (c.document_relationships or {}).get(root.stage) == root.id
        ]
        chunks.sort(key=lambda c: c.continuation_count or 0)
        return [root] + chunks

    @staticmethod
    def find_by_storage(db: Session, storage_path: str, file_name: str) -> DialecticContribution | None:
        return (
            db.query(DialecticContribution)
            .filter(
                DialecticContribution.storage_path == storage_path,
                DialecticContribution.file_name == file_name,
            )
            .first()
        )
