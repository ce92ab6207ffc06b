"""In-app notifications."""

from selliox.notifications.models import Notification, NotificationType
from selliox.notifications.service import NotificationService, notification_service

__all__ = ["Notification", "NotificationService", "NotificationType", "notification_service"]
