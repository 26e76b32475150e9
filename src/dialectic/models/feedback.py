from sqlalchemy import Column, Integer, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class DialecticFeedback(Base, AuditMixin):
    __tablename__ = "dialectic_feedback"

    id = uuid_pk()
    project_id = uuid_fk("dialectic_projects")
    session_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(255), nullable=True)
    stage_slug = Column(String(100), nullable=False)
    iteration_number = Column(Integer, nullable=False, default=1)

    feedback_type = Column(String(100), nullable=True)
    document_key = Column(String(100), nullable=True)
    resource_description = Column(JSON, nullable=True)

    storage_bucket = Column(String(255), nullable=True)
    storage_path = Column(String(1024), nullable=True)
    file_name = Column(String(512), nullable=True)
    mime_type = Column(String(100), nullable=True)
    size_bytes = Column(Integer, nullable=True)
