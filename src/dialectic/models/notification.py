from sqlalchemy import Boolean, Column, String, JSON
from dialectic.db.database import Base
from dialectic.models.base_model import uuid_pk
from dialectic.models.mixins import AuditMixin


class Notification(Base, AuditMixin):
    """In-app notification row for a project owner."""
    __tablename__ = "notifications"

    id = uuid_pk()
    user_id = Column(String(255), nullable=False, index=True)
    type = Column(String(100), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
