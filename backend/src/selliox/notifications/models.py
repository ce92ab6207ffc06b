"""In-app notification model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from selliox.storage.models import Base


class NotificationType(str, Enum):
    REFERRAL_USED = "referral_used"
    DRAW_ENTRY = "draw_entry"
    DRAW_WINNER = "draw_winner"
    DRAW_REMINDER = "draw_reminder"
    PAYMENT_CLAIMED = "payment_claimed"
    PAYMENT_PROCESSED = "payment_processed"


DEFAULT_TITLES = {
    NotificationType.REFERRAL_USED: "Referral Used",
    NotificationType.DRAW_ENTRY: "New Draw Entries",
    NotificationType.DRAW_WINNER: "Draw Winner",
    NotificationType.DRAW_REMINDER: "Draw Reminder",
    NotificationType.PAYMENT_CLAIMED: "Payment Claimed",
    NotificationType.PAYMENT_PROCESSED: "Payment Processed",
}


class Notification(Base):
    """Notification shown to a user in the app."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(120), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, type={self.type})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
