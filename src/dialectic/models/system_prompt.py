from sqlalchemy import Boolean, Column, String, Text
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_pk
from dialectic.models.mixins import AuditMixin


class SystemPrompt(Base, AuditMixin):
    __tablename__ = "system_prompts"

    id = uuid_pk()
    name = Column(String(255), nullable=False, unique=True)
    # Jinja2 template text
    prompt_text = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
