from sqlalchemy import Boolean, Column, Integer, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class DialecticContribution(Base, AuditMixin):
    """A model-generated artifact (or one chunk of it) stored in the object store."""
    __tablename__ = "dialectic_contributions"

    id = uuid_pk()
    session_id = uuid_fk("dialectic_sessions")
    stage = Column(String(100), nullable=False, index=True)
    iteration_number = Column(Integer, nullable=False, default=1)
    user_id = Column(String(255), nullable=True)

    model_id = Column(String(36), nullable=True)
    model_name = Column(String(255), nullable=True)
    contribution_type = Column(String(100), nullable=True)
    document_key = Column(String(100), nullable=True)

    storage_bucket = Column(String(255), nullable=True)
    storage_path = Column(String(1024), nullable=True)
    file_name = Column(String(512), nullable=True)
    mime_type = Column(String(100), nullable=True, default="text/markdown")
    size_bytes = Column(Integer, nullable=True)

    document_relationships = Column(JSON, nullable=True)
    target_contribution_id = Column(String(36), nullable=True)
    continuation_count = Column(Integer, nullable=False, default=0)
    is_latest_edit = Column(Boolean, nullable=False, default=True)

    tokens_used_input = Column(Integer, nullable=True)
    tokens_used_output = Column(Integer, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
