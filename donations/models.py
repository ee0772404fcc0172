# donations/models.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import relationship

from .db import Base

STATUS_ACTIVE = "active"
STATUS_DELETED = "deleted"

ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"

DONATION_METHODS = ("cash", "transfer", "card", "other")
EXPENSE_CATEGORIES = (
    "medicines",
    "consultations",
    "studies",
    "hospital",
    "transport",
    "other",
)


def utcnow() -> datetime:
    # naive UTC, SQLite drops tzinfo anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_MEMBER)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    donations = relationship("Donation", back_populates="creator")
    expenses = relationship("Expense", back_populates="creator")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True)
    # free-form, no campaigns table
    campaign_id = Column(String(100), nullable=False, index=True)

    donor_name = Column(String(120), nullable=False)
    # kept in sync with donor_name on every write
    donor_name_lower = Column(String(120), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    # cash / transfer / card / other
    method = Column(String(20), nullable=False, default="cash")
    note = Column(String(500), nullable=False, default="")

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # active -> deleted, never the other way
    status = Column(String(10), nullable=False, default=STATUS_ACTIVE, index=True)

    creator = relationship("User", back_populates="donations")

    __table_args__ = (
        Index("ix_donations_campaign_status_created", "campaign_id", "status", "created_at"),
    )


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True)
    campaign_id = Column(String(100), nullable=False, index=True)

    concept = Column(String(200), nullable=False)
    category = Column(String(30), nullable=False, default="medicines")

    amount = Column(Numeric(12, 2), nullable=False)
    note = Column(String(500), nullable=False, default="")

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    status = Column(String(10), nullable=False, default=STATUS_ACTIVE, index=True)

    creator = relationship("User", back_populates="expenses")

    __table_args__ = (
        Index("ix_expenses_campaign_status_created", "campaign_id", "status", "created_at"),
    )
