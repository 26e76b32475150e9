from sqlalchemy import Column, Integer, String, JSON, Text
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_fk, uuid_pk
from dialectic.models.mixins import AuditMixin


class DialecticProject(Base, AuditMixin):
    __tablename__ = "dialectic_projects"

    id = uuid_pk()
    # Owner of the project; every lifecycle notification is addressed here.
    user_id = Column(String(255), nullable=False, index=True)
    project_name = Column(String(255), nullable=False)
    initial_user_prompt = Column(Text, nullable=True)


class DialecticSession(Base, AuditMixin):
    __tablename__ = "dialectic_sessions"

    id = uuid_pk()
    project_id = uuid_fk("dialectic_projects")
    current_stage_slug = Column(String(100), nullable=True)
    iteration_count = Column(Integer, nullable=False, default=1)
    status = Column(String(50), nullable=True)
    selected_model_ids = Column(JSON, nullable=True)
