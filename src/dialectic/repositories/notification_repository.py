# src/dialectic/repositories/notification_repository.py

import logging

from opentelemetry import trace
from sqlalchemy.orm import Session

from dialectic.models.notification import Notification

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class NotificationRepository:

    @staticmethod
    def create(db: Session, *, user_id: str, type: str, data: dict) -> Notification:
        notification = Notification(user_id=user_id, type=type, data=data)

        with tracer.start_as_current_span("db.create_notification") as span:
            span.set_attribute("notification.type", type)

            db.add(notification)
            db.commit()
            db.refresh(notification)

        logger.debug("Stored %s notification id=%s for user=%s", type, notification.id, user_id)
        return notification

    @staticmethod
    def list_for_user(db: Session, user_id: str, limit: int = 50) -> list[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .all()
        )
