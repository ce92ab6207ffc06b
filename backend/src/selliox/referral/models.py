"""Referral program database models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import relationship

from selliox.storage.models import Base


class ReferralStatus(str, Enum):
    """Referral lifecycle."""
    PENDING = "pending"
    CONVERTED = "converted"
    REWARDED = "rewarded"


class RewardType(str, Enum):
    """What the referrer receives for a conversion."""
    FREE_MONTH = "free_month"
    DRAW_ENTRIES = "draw_entries"


class RewardStatus(str, Enum):
    """Progress of the reward attached to a referral."""
    PENDING = "pending"
    CLAIMED = "claimed"  # referrer picked a reward type ahead of conversion
    PROCESSED = "processed"


class ReferralCode(Base):
    """Unique referral code owned by a user.

    One active code per user, enforced by a partial unique index.
    ``usage_count`` grows by one per conversion.
    """
    __tablename__ = "referral_codes"
    __table_args__ = (
        Index(
            "uq_referral_codes_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    usage_count = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserAccount", foreign_keys=[user_id])

    def __repr__(self):
        return f"<ReferralCode(code={self.code}, usage={self.usage_count})>"


class Referral(Base):
    """Referral relationship between a referrer and a referred user.

    At most one row per (referrer, referred, code); the unique constraint is
    what makes concurrent redemptions of the same pair converge.
    """
    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_id", "code", name="uq_referrals_pair_code"),
    )

    id = Column(Integer, primary_key=True)
    referrer_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    referred_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    code = Column(String(20), nullable=False)

    status = Column(String(20), default=ReferralStatus.PENDING.value, nullable=False, index=True)
    reward_type = Column(String(20), nullable=True)
    reward_status = Column(String(20), nullable=True)

    # Listing created by the referred user, owned by the listings service
    listing_id = Column(Integer, nullable=True)

    # Timestamps
    converted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    referrer = relationship("UserAccount", foreign_keys=[referrer_id])
    referred = relationship("UserAccount", foreign_keys=[referred_id])

    def __repr__(self):
        return f"<Referral(referrer={self.referrer_id}, referred={self.referred_id}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "referrer_id": self.referrer_id,
            "referred_id": self.referred_id,
            "code": self.code,
            "status": self.status,
            "reward_type": self.reward_type,
            "reward_status": self.reward_status,
            "listing_id": self.listing_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "converted_at": self.converted_at.isoformat() if self.converted_at else None,
        }
