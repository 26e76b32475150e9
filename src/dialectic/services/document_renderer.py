# src/dialectic/services/document_renderer.py

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from jinja2 import Template
from markdown import Markdown
from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.errors import DocumentIdentityError, RenderValidationError, StorageDownloadError
from dialectic.metrics import documents_rendered_total
from dialectic.models.generation_job import GenerationJob
from dialectic.repositories.contribution_repository import ContributionRepository
from dialectic.repositories.project_resource_repository import ProjectResourceRepository
from dialectic.services import s3
from dialectic.services.notification_service import build_notification_payload
from dialectic.utils.filename_utils import join_storage_key
from dialectic.utils.storage_paths import build_rendered_document_path, build_rendered_file_name

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
DEFAULT_TEMPLATE = "document_base.html"


def _load_template(template_filename: str | None) -> Template:
    name = template_filename or DEFAULT_TEMPLATE
    if Path(name).name != name:
        raise RenderValidationError(f"template_filename must be a bare file name, got '{name}'")
    path = TEMPLATES_DIR / name
    if not path.is_file():
        raise RenderValidationError(f"Render template '{name}' not found")
    return Template(path.read_text(encoding="utf-8"))


def render_markdown_to_html(
    markdown_text: str,
    title: str,
    stage_slug: str,
    iteration_number: int,
    model_name: str | None = None,
    template_filename: str | None = None,
) -> str:
    """
    Convert Markdown into a standalone HTML page.
    Includes a generated table of contents.
    """
    with tracer.start_as_current_span("render_markdown_to_html") as span:
        span.set_attribute("markdown.length", len(markdown_text))

        md = Markdown(extensions=["toc", "fenced_code", "tables", "admonition"])
        html_content = md.convert(markdown_text)
        toc_html = md.toc or "<p><em>No table of contents available</em></p>"

        return _load_template(template_filename).render(
            title=title,
            stage_slug=stage_slug,
            iteration_number=iteration_number,
            model_name=model_name,
            toc=toc_html,
            content=html_content,
            now=datetime.now(timezone.utc).strftime("%B %d, %Y at %H:%M UTC"),
        )


class DocumentRenderer:
    """
    Assembles a document from its chain of contribution chunks and stores
    the Markdown and HTML renderings as a `rendered_document` resource.
    """

    def __init__(
        self,
        upload: Callable[..., Any] = None,
        download: Callable[..., bytes] = None,
        notifications=None,
    ):
        self.upload = upload or s3.upload_bytes
        self.download = download or s3.download_bytes
        self.notifications = notifications

    def _read(self, contribution) -> str:
        key = join_storage_key(contribution.storage_path, contribution.file_name)
        data = self.download(key, bucket=contribution.storage_bucket)
        if not data:
            return ""
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StorageDownloadError(
                f"Chunk {contribution.id} at {key} is not valid UTF-8 text: {exc}"
            ) from exc

    def render_document(
        self,
        db: Session,
        params: dict[str, Any],
        job: GenerationJob | None = None,
        owner_user_id: str | None = None,
    ) -> dict[str, Any]:
        document_identity = params["documentIdentity"]
        source_id = params.get("sourceContributionId") or document_identity

        with tracer.start_as_current_span("render.render_document") as span:
            span.set_attribute("document.identity", document_identity)
            span.set_attribute("document.source_contribution_id", source_id)

            root = ContributionRepository.get_by_id(db, document_identity)
            if root is None:
                raise DocumentIdentityError(f"Root contribution {document_identity} not found for rendering")

            chain = ContributionRepository.list_document_chain(db, root)
            if source_id not in {chunk.id for chunk in chain}:
                raise DocumentIdentityError(
                    f"Contribution {source_id} is not part of the document rooted at {document_identity}"
                )

            markdown_text = "".join(self._read(chunk) for chunk in chain)
            document_key = params["documentKey"]
            model_slug = root.model_name or root.model_id or "model"

            html = render_markdown_to_html(
                markdown_text,
                title=document_key.replace("_", " ").title(),
                stage_slug=params["stageSlug"],
                iteration_number=params["iterationNumber"],
                model_name=root.model_name,
                template_filename=params.get("template_filename"),
            )

            storage_path = build_rendered_document_path(
                params["projectId"], params["sessionId"], params["iterationNumber"], params["stageSlug"]
            )
            md_name = build_rendered_file_name(model_slug, document_key, ".md")
            html_name = build_rendered_file_name(model_slug, document_key, ".html")
            bucket = root.storage_bucket
            rendered_bytes = markdown_text.encode("utf-8")

            self.upload(join_storage_key(storage_path, md_name), rendered_bytes, content_type="text/markdown", bucket=bucket)
            self.upload(
                join_storage_key(storage_path, html_name),
                html.encode("utf-8"),
                content_type="text/html",
                bucket=bucket,
            )

            resource = ProjectResourceRepository.upsert_rendered_document(
                db,
                project_id=params["projectId"],
                session_id=params["sessionId"],
                user_id=root.user_id,
                stage_slug=params["stageSlug"],
                iteration_number=params["iterationNumber"],
                document_key=document_key,
                source_contribution_id=source_id,
                resource_description={
                    "document_key": document_key,
                    "model_id": root.model_id,
                    "model_name": root.model_name,
                    "document_relationships": root.document_relationships,
                    "html_file_name": html_name,
                    "chunk_count": len(chain),
                },
                storage_bucket=bucket,
                storage_path=storage_path,
                file_name=md_name,
                mime_type="text/markdown",
                size_bytes=len(rendered_bytes),
            )
            documents_rendered_total.inc()
            span.set_attribute("render.chunk_count", len(chain))

        if self.notifications is not None and job is not None and owner_user_id and source_id != document_identity:
            event = build_notification_payload(
                "render_chunk_completed",
                job,
                ((job.payload or {}).get("planner_metadata") or {}).get("recipe_step_key"),
                document_key=document_key,
                modelId=root.model_id,
                latestRenderedResourceId=resource.id,
            )
            self.notifications.send_document_centric_notification(event, owner_user_id)

        logger.info(
            "Rendered %s (%d chunk(s)) for session=%s to %s",
            document_key,
            len(chain),
            params["sessionId"],
            storage_path,
        )
        return {
            "pathContext": {
                "projectId": params["projectId"],
                "sessionId": params["sessionId"],
                "iterationNumber": params["iterationNumber"],
                "stageSlug": params["stageSlug"],
                "documentKey": document_key,
                "storagePath": storage_path,
                "fileName": md_name,
                "htmlFileName": html_name,
                "sourceContributionId": source_id,
            },
            "renderedBytes": rendered_bytes,
            "latestRenderedResourceId": resource.id,
        }
