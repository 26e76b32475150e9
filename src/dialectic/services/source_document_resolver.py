"""
Resolves a recipe step's input rules into downloaded SourceDocuments.

Each rule type maps to one document family:
  document         -> rendered documents in project resources
  feedback         -> user feedback rows
  header_context   -> header-context contributions
  contribution     -> any generated contribution
  seed_prompt      -> the seed prompt project resource
  project_resource -> any project resource
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from botocore.exceptions import ClientError
from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import (
    RecipeConfigurationError,
    RequiredInputNotFoundError,
    StorageConfigurationError,
    StorageDownloadError,
)
from dialectic.models.generation_job import GenerationJob
from dialectic.repositories.contribution_repository import ContributionRepository
from dialectic.repositories.feedback_repository import FeedbackRepository
from dialectic.repositories.project_resource_repository import ProjectResourceRepository
from dialectic.schemas.documents import SourceDocument
from dialectic.schemas.recipe import InputRule
from dialectic.services import s3
from dialectic.utils.filename_utils import join_storage_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class ResolutionContext:
    project_id: str
    session_id: str
    iteration_number: int
    stage_slug: str

    @classmethod
    def from_job(cls, job: GenerationJob) -> "ResolutionContext":
        payload = job.payload or {}
        return cls(
            project_id=payload.get("projectId"),
            session_id=payload.get("sessionId") or job.session_id,
            iteration_number=payload.get("iterationNumber") or job.iteration_number,
            stage_slug=payload.get("stageSlug") or job.stage_slug,
        )


# ---------------------------------------------------------------------------
# Row -> SourceDocument
# ---------------------------------------------------------------------------

def contribution_to_document(row, doc_type: str) -> SourceDocument:
    return SourceDocument(
        id=row.id,
        type=doc_type,
        document_key=row.document_key,
        stage_slug=row.stage,
        iteration_number=row.iteration_number,
        model_id=row.model_id,
        model_name=row.model_name,
        contribution_type=row.contribution_type,
        document_relationships=row.document_relationships,
        created_at=row.created_at,
        storage_bucket=row.storage_bucket,
        storage_path=row.storage_path,
        file_name=row.file_name,
    )


def resource_to_document(row, doc_type: str) -> SourceDocument:
    description = row.resource_description or {}
    return SourceDocument(
        id=row.id,
        type=doc_type,
        document_key=row.document_key or description.get("document_key"),
        stage_slug=row.stage_slug,
        iteration_number=row.iteration_number,
        model_id=description.get("model_id"),
        model_name=description.get("model_name"),
        document_relationships=description.get("document_relationships"),
        created_at=row.created_at,
        storage_bucket=row.storage_bucket,
        storage_path=row.storage_path,
        file_name=row.file_name,
    )


def feedback_to_document(row) -> SourceDocument:
    return SourceDocument(
        id=row.id,
        type="feedback",
        document_key=row.document_key or row.feedback_type,
        stage_slug=row.stage_slug,
        iteration_number=row.iteration_number,
        created_at=row.created_at,
        storage_bucket=row.storage_bucket,
        storage_path=row.storage_path,
        file_name=row.file_name,
    )


class SourceDocumentResolver:
    """Finds and downloads the documents an input rule asks for."""

    def __init__(self, db: Session, download: Callable[..., bytes] = None):
        self.db = db
        self.download = download or s3.download_bytes

    def resolve(
        self,
        rule: InputRule,
        context: ResolutionContext,
        auth_token: str | None = None,
    ) -> list[SourceDocument]:
        with tracer.start_as_current_span("resolver.resolve_input_rule") as span:
            span.set_attribute("rule.type", rule.type)
            span.set_attribute("rule.stage", rule.target_stage or "")
            span.set_attribute("rule.document_key", rule.document_key or "")
            span.set_attribute("auth.token_present", bool(auth_token))

            documents = self._dedupe_latest(self._query(rule, context))
            span.set_attribute("rule.match_count", len(documents))

            if not documents:
                if rule.is_required():
                    logger.warning(
                        "Required input type=%s stage=%s document_key=%s not found for session=%s",
                        rule.type,
                        rule.target_stage,
                        rule.document_key,
                        context.session_id,
                    )
                    raise RequiredInputNotFoundError(rule.type)
                logger.info("Optional input type=%s produced no documents", rule.type)
                return []

            for document in documents:
                document.content = self._download_content(document)

        logger.info(
            "Resolved %d document(s) for rule type=%s stage=%s document_key=%s",
            len(documents),
            rule.type,
            rule.target_stage,
            rule.document_key,
        )
        return documents

    def find_for_rules(
        self,
        rules: list[InputRule],
        context: ResolutionContext,
        auth_token: str | None = None,
    ) -> list[SourceDocument]:
        """All documents for all rules, in rule order then resolver order."""
        documents: list[SourceDocument] = []
        for rule in rules:
            documents.extend(self.resolve(rule, context, auth_token))
        return documents

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _query(self, rule: InputRule, context: ResolutionContext) -> list[SourceDocument]:
        stage = rule.target_stage
        document_key = rule.document_key

        if rule.type == "document":
            rows = ProjectResourceRepository.list_for_project(
                self.db,
                project_id=context.project_id,
                session_id=context.session_id,
                resource_type="rendered_document",
                stage_slug=stage,
                document_key=document_key,
                iteration_number=context.iteration_number,
            )
            return [resource_to_document(row, "document") for row in rows]

        if rule.type == "feedback":
            rows = FeedbackRepository.list_for_session(
                self.db,
                session_id=context.session_id,
                stage_slug=stage,
                iteration_number=context.iteration_number,
                document_key=document_key,
            )
            return [feedback_to_document(row) for row in rows]

        if rule.type in ("header_context", "contribution"):
            rows = ContributionRepository.list_for_stage(
                self.db,
                session_id=context.session_id,
                iteration_number=context.iteration_number,
                stage=stage,
                document_key=document_key,
                contribution_type="header_context" if rule.type == "header_context" else None,
            )
            return [contribution_to_document(row, rule.type) for row in rows]

        if rule.type in ("seed_prompt", "project_resource"):
            rows = ProjectResourceRepository.list_for_project(
                self.db,
                project_id=context.project_id,
                session_id=context.session_id if rule.type == "seed_prompt" else None,
                resource_type="seed_prompt" if rule.type == "seed_prompt" else None,
                stage_slug=stage,
                document_key=document_key,
            )
            return [resource_to_document(row, rule.type) for row in rows]

        raise RecipeConfigurationError(f"Unsupported input rule type: {rule.type}")

    @staticmethod
    def _dedupe_latest(documents: list[SourceDocument]) -> list[SourceDocument]:
        # Repositories return newest first, so the first file name seen wins.
        seen: set[str] = set()
        unique: list[SourceDocument] = []
        for document in documents:
            key = document.file_name or document.id
            if key in seen:
                continue
            seen.add(key)
            unique.append(document)
        return unique

    def _download_content(self, document: SourceDocument) -> str:
        if not (document.file_name and document.storage_bucket and document.storage_path):
            raise StorageConfigurationError(
                f"Document {document.id} is missing required storage information "
                f"(file_name, storage_bucket, or storage_path)."
            )

        key = join_storage_key(document.storage_path, document.file_name)
        try:
            data = self.download(key, bucket=document.storage_bucket)
        except ClientError as exc:
            raise StorageDownloadError(
                f"Failed to download content for document {document.id} from {key}: {exc}"
            ) from exc

        if not data:
            return ""
        if not isinstance(data, bytes):
            return str(data)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StorageDownloadError(
                f"Content for document {document.id} at {key} is not valid UTF-8 text: {exc}"
            ) from exc


def find_source_documents(
    db: Session,
    parent_job: GenerationJob,
    inputs_required: list[InputRule],
    auth_token: str | None = None,
    download: Callable[..., bytes] = None,
) -> list[SourceDocument]:
    resolver = SourceDocumentResolver(db, download=download)
    return resolver.find_for_rules(inputs_required, ResolutionContext.from_job(parent_job), auth_token)
