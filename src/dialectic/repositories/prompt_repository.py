# src/dialectic/repositories/prompt_repository.py

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.ai_provider import AiProvider
from dialectic.models.system_prompt import SystemPrompt

tracer = trace.get_tracer(__name__)


class PromptRepository:

    @staticmethod
    def get_template(db: Session, prompt_template_id: str) -> SystemPrompt | None:
        with tracer.start_as_current_span("db.get_prompt_template") as span:
            span.set_attribute("prompt.template_id", prompt_template_id)
            return (
                db.query(SystemPrompt)
                .filter(SystemPrompt.id == prompt_template_id, SystemPrompt.is_active.is_(True))
                .first()
            )

    @staticmethod
    def get_provider(db: Session, model_id: str) -> AiProvider | None:
        with tracer.start_as_current_span("db.get_ai_provider") as span:
            span.set_attribute("model.id", model_id)
            return (
                db.query(AiProvider)
                .filter(AiProvider.id == model_id, AiProvider.is_active.is_(True))
                .first()
            )
