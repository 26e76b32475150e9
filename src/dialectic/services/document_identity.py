"""
Identity lookup for resource documents.

A document placed in a prompt without `document_key`/`type`/`stage_slug`
is matched by storage path + file name against contributions, project
resources and feedback, in that order.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from dialectic.repositories.contribution_repository import ContributionRepository
from dialectic.repositories.feedback_repository import FeedbackRepository
from dialectic.repositories.project_resource_repository import ProjectResourceRepository
from dialectic.schemas.documents import ResourceDocument

logger = logging.getLogger(__name__)


def _identity_from_storage(db: Session, storage_path: str, file_name: str) -> dict | None:
    contribution = ContributionRepository.find_by_storage(db, storage_path, file_name)
    if contribution is not None:
        return {
            "document_key": contribution.document_key,
            "type": contribution.contribution_type or "contribution",
            "stage_slug": contribution.stage,
        }

    resource = ProjectResourceRepository.find_by_storage(db, storage_path, file_name)
    if resource is not None:
        return {
            "document_key": resource.document_key or (resource.resource_description or {}).get("document_key"),
            "type": resource.resource_type,
            "stage_slug": resource.stage_slug,
        }

    feedback = FeedbackRepository.find_by_storage(db, storage_path, file_name)
    if feedback is not None:
        return {
            "document_key": feedback.document_key or feedback.feedback_type,
            "type": "feedback",
            "stage_slug": feedback.stage_slug,
        }
    return None


def enrich_document_identity(db: Session, documents: list[ResourceDocument]) -> list[ResourceDocument]:
    """
    Return the documents with missing identity fields filled in where a
    storage match exists. Order and content are unchanged; documents that
    cannot be matched come back as they were.
    """
    enriched: list[ResourceDocument] = []
    for document in documents:
        if document.has_identity() or not (document.storage_path and document.file_name):
            enriched.append(document)
            continue

        identity = _identity_from_storage(db, document.storage_path, document.file_name)
        if identity is None:
            logger.warning(
                "No stored document matches %s/%s for resource %s",
                document.storage_path,
                document.file_name,
                document.id,
            )
            enriched.append(document)
            continue

        updates = {key: value for key, value in identity.items() if value and not getattr(document, key)}
        enriched.append(document.model_copy(update=updates))
    return enriched
