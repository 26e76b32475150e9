from sqlalchemy import Boolean, Column, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_pk
from dialectic.models.mixins import AuditMixin


class AiProvider(Base, AuditMixin):
    """
    A callable model.

    `config` carries provider limits, e.g.
    {"context_window_tokens": 200000, "provider_max_output_tokens": 8192}.
    """
    __tablename__ = "ai_providers"

    id = uuid_pk()
    name = Column(String(255), nullable=False)
    api_identifier = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=False, default="anthropic")
    config = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
