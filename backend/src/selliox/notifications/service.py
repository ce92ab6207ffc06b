"""Notification sink.

``emit`` is fire-and-forget: it writes in its own transaction, after the
triggering state change has committed, and never raises.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from selliox.auth.models import UserAccount
from selliox.logging_config import get_logger
from selliox.notifications.models import DEFAULT_TITLES, Notification, NotificationType
from selliox.storage.db import db

logger = get_logger(__name__)


class NotificationService:
    """Creates and reads in-app notifications."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def emit(
        self,
        user_id: int,
        type: NotificationType | str,
        message: str,
        data: dict[str, Any] | None = None,
        title: str | None = None,
    ) -> Notification | None:
        """Record a notification for a user.

        Args:
            user_id: Recipient
            type: Notification type
            message: Human readable message
            data: Optional structured payload
            title: Optional title (defaults per type)

        Returns:
            The notification, or None if it could not be stored
        """
        kind = NotificationType(type)
        try:
            with db.session() as session:
                notification = Notification(
                    user_id=user_id,
                    type=kind.value,
                    title=title or DEFAULT_TITLES[kind],
                    message=message,
                    data=data or {},
                )
                session.add(notification)
                session.flush()
                self.logger.info("notification_emitted", user_id=user_id, type=kind.value)
                return notification
        except SQLAlchemyError as e:
            self.logger.error("notification_emit_failed", user_id=user_id, type=kind.value, error=str(e))
            return None

    def emit_to_admins(
        self,
        type: NotificationType | str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Fan a notification out to every admin.

        Returns:
            Number of notifications stored
        """
        try:
            with db.session() as session:
                admin_ids = [
                    row[0]
                    for row in session.query(UserAccount.id).filter(
                        UserAccount.is_admin == True,  # noqa: E712
                        UserAccount.is_active == True,  # noqa: E712
                    )
                ]
        except SQLAlchemyError as e:
            self.logger.error("admin_lookup_failed", error=str(e))
            return 0

        sent = 0
        for admin_id in admin_ids:
            if self.emit(admin_id, type, message, data):
                sent += 1
        return sent

    def list_unread(
        self,
        user_id: int,
        types: list[NotificationType] | None = None,
        limit: int = 50,
    ) -> list[Notification]:
        """Unread notifications, newest first."""
        with db.session() as session:
            query = session.query(Notification).filter(
                Notification.user_id == user_id,
                Notification.read == False,  # noqa: E712
            )
            if types:
                query = query.filter(Notification.type.in_([t.value for t in types]))
            return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, user_id: int, notification_id: int) -> Notification | None:
        """Mark one of the user's notifications as read.

        Returns:
            The notification, or None if it does not belong to the user
        """
        with db.session() as session:
            notification = session.query(Notification).filter(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            ).first()
            if not notification:
                return None
            notification.read = True
            notification.read_at = notification.read_at or datetime.utcnow()
            return notification

    def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification of the user as read."""
        with db.session() as session:
            result = session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
                .values(read=True, read_at=datetime.utcnow())
            )
            return result.rowcount or 0


# Singleton instance
notification_service = NotificationService()
