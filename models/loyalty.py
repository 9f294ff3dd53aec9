from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Boolean,
    Numeric, Enum, Index, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK, LoyaltyTransactionType, ReferralStatus


class LoyaltyAccount(Base):
    """
    Customer AeroPoints balance.

    ``balance`` is the spendable amount; lifetime counters are informational.
    """
    __tablename__ = "loyalty_points"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)

    balance = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_spent = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    transactions = relationship("LoyaltyTransaction", back_populates="account")


class LoyaltyTransaction(Base):
    """
    Append-only ledger row. ``points`` is signed: positive for earn entries,
    negative for redeem and expire entries.

    The unique constraint on (account, type, booking) is what makes awarding
    points for a booking idempotent.
    """
    __tablename__ = "loyalty_transactions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    loyalty_id = Column(BigIntPK, ForeignKey("loyalty_points.id"), nullable=False, index=True)

    transaction_type = Column(Enum(LoyaltyTransactionType), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    booking_id = Column(String(36), nullable=True, index=True)
    referral_code = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)

    expires_at = Column(DateTime, nullable=True, index=True)
    expired = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    account = relationship("LoyaltyAccount", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("loyalty_id", "transaction_type", "booking_id", name="uq_loyalty_tx_booking"),
    )


class ReferralCode(Base):
    __tablename__ = "referral_codes"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    code = Column(String(30), nullable=False, unique=True)

    total_referrals = Column(Integer, nullable=False, default=0)
    total_bookings = Column(Integer, nullable=False, default=0)
    total_commission = Column(Numeric(14, 2), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Referral(Base):
    """
    One referral per referee. The referee gets a first-booking discount;
    the referrer gets points once the referee's trip completes.
    """
    __tablename__ = "referrals"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    referee_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    referral_code = Column(String(30), nullable=False, index=True)

    status = Column(Enum(ReferralStatus), nullable=False, default=ReferralStatus.PENDING, index=True)
    referee_discount = Column(Numeric(14, 2), nullable=False)
    referrer_points = Column(Integer, nullable=False)

    booking_id = Column(String(36), nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)
    referee_reward_claimed = Column(Boolean, nullable=False, default=False)
    referrer_reward_claimed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_referral_referrer_status", "referrer_id", "status"),
    )
