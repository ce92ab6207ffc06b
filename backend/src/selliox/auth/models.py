"""User account model and API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from selliox.storage.models import Base


class UserAccount(Base):
    """Marketplace user account.

    Carries the referral program counters. ``active_draw_tickets`` mirrors the
    sum of the user's active draw entries and is only ever changed through
    atomic SQL increments.
    """
    __tablename__ = "user_accounts"

    id = Column(Integer, primary_key=True)

    # Identity
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)

    # Referral program
    referral_code = Column(String(20), nullable=True)
    referral_code_status = Column(String(10), nullable=True)  # active, inactive
    referred_by_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=True, index=True)

    # Referral stats
    referrals_count = Column(Integer, default=0, nullable=False)
    successful_conversions = Column(Integer, default=0, nullable=False)
    active_draw_tickets = Column(Integer, default=0, nullable=False)
    free_months_used = Column(Integer, default=0, nullable=False)
    total_rewards = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email})>"

    @property
    def referral_stats(self) -> dict:
        """Referral counters as a dict."""
        return {
            "referrals_count": self.referrals_count or 0,
            "successful_conversions": self.successful_conversions or 0,
            "active_draw_tickets": self.active_draw_tickets or 0,
            "free_months_used": self.free_months_used or 0,
            "total_rewards": self.total_rewards or 0,
        }


# Pydantic models for API


class User(BaseModel):
    """User data for API responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None
    is_admin: bool
    referral_code: str | None = None
    active_draw_tickets: int = 0
    created_at: datetime


class UserCreate(BaseModel):
    """User creation request."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    name: str | None = Field(default=None, max_length=100)
    referral_code: str | None = Field(default=None, max_length=20)


class UserLogin(BaseModel):
    """User login request."""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: User
