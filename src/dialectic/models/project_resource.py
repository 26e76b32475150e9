from sqlalchemy import Column, Integer, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class DialecticProjectResource(Base, AuditMixin):
    __tablename__ = "dialectic_project_resources"

    id = uuid_pk()
    project_id = uuid_fk("dialectic_projects")
    session_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(255), nullable=True)
    stage_slug = Column(String(100), nullable=True)
    iteration_number = Column(Integer, nullable=True)

    # rendered_document, seed_prompt, general_resource, ...
    resource_type = Column(String(100), nullable=False)
    document_key = Column(String(100), nullable=True)
    source_contribution_id = Column(String(36), nullable=True)
    resource_description = Column(JSON, nullable=True)

    storage_bucket = Column(String(255), nullable=True)
    storage_path = Column(String(1024), nullable=True)
    file_name = Column(String(512), nullable=True)
    mime_type = Column(String(100), nullable=True)
    size_bytes = Column(Integer, nullable=True)
