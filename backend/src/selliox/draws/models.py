"""Prize draw database models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from selliox.storage.models import Base


class EntryStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


class EntrySource(str, Enum):
    SIGNUP = "signup"
    REFERRAL = "referral"
    LISTING = "listing"
    PROMOTION = "promotion"


class DrawStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Winner payout progress: pending -> claimed -> paid."""
    PENDING = "pending"
    CLAIMED = "claimed"
    PAID = "paid"


class PaymentDetailStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    PAID = "paid"


class DrawEntry(Base):
    """Ticket ledger row.

    Append-only: rows move from active to expired (or used) but are never
    deleted.
    """
    __tablename__ = "draw_entries"
    __table_args__ = (
        CheckConstraint("tickets >= 1", name="ck_draw_entries_tickets_positive"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    tickets = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=EntryStatus.ACTIVE.value, index=True)
    source = Column(String(20), nullable=False)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=True)
    expiry_date = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DrawEntry(id={self.id}, user={self.user_id}, tickets={self.tickets}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tickets": self.tickets,
            "source": self.source,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


class Draw(Base):
    """Monthly prize draw, one per (month, year)."""
    __tablename__ = "draws"
    __table_args__ = (
        UniqueConstraint("month", "year", name="uq_draws_period"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_draws_month_range"),
    )

    id = Column(Integer, primary_key=True)
    month = Column(Integer, nullable=False)  # 1-12
    year = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=DrawStatus.PENDING.value)

    # Winner (set once on completion)
    winner_user_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=True, index=True)
    winner_tickets = Column(Integer, nullable=True)  # winner's total active tickets at draw time
    total_entries = Column(Integer, nullable=False, default=0)

    prize_amount = Column(Float, nullable=False, default=250.0)
    draw_date = Column(DateTime, nullable=True)

    # Payout
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_detail_id = Column(Integer, ForeignKey("payment_details.id", use_alter=True), nullable=True)
    paid_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    winner = relationship("UserAccount", foreign_keys=[winner_user_id])
    payment_detail = relationship("PaymentDetail", foreign_keys=[payment_detail_id])

    def __repr__(self):
        return f"<Draw(period={self.month}/{self.year}, status={self.status}, winner={self.winner_user_id})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "month": self.month,
            "year": self.year,
            "status": self.status,
            "winner": {
                "user_id": self.winner_user_id,
                "tickets": self.winner_tickets,
            },
            "total_entries": self.total_entries,
            "prize_amount": self.prize_amount,
            "draw_date": self.draw_date.isoformat() if self.draw_date else None,
            "payment_status": self.payment_status,
            "payment_detail_id": self.payment_detail_id,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
        }


class PaymentDetail(Base):
    """Payout details submitted by a draw winner.

    The account number is encrypted at rest; read it through the
    ``account_number`` property.
    """
    __tablename__ = "payment_details"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user_accounts.id"), nullable=False, index=True)
    draw_id = Column(Integer, ForeignKey("draws.id"), nullable=False, unique=True)

    bank_name = Column(String(255), nullable=False)
    account_holder = Column(String(255), nullable=False)
    account_number_encrypted = Column("account_number", Text, nullable=False)

    status = Column(String(20), nullable=False, default=PaymentDetailStatus.PENDING.value)
    verified_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    notes = Column(Text, default="")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PaymentDetail(id={self.id}, draw={self.draw_id}, status={self.status})>"

    @property
    def account_number(self) -> str:
        """Decrypted account number."""
        from selliox.draws.crypto import decrypt_field
        return decrypt_field(self.account_number_encrypted)

    @account_number.setter
    def account_number(self, value: str):
        """Encrypt and store the account number."""
        from selliox.draws.crypto import encrypt_field
        self.account_number_encrypted = encrypt_field(value.strip())

    @property
    def masked_account_number(self) -> str:
        return f"****{self.account_number[-4:]}"
