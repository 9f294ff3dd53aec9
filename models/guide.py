from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, Boolean,
    Float, Enum, Index, ForeignKey, UniqueConstraint, JSON
)
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import (
    Base, BigIntPK, new_uuid,
    TripStatus, LicenseStatus, RewardTransactionType, RewardSourceType
)


class MeetingPoint(Base):
    """Check-in location with an allowed radius in metres."""
    __tablename__ = "meeting_points"

    id = Column(String(36), primary_key=True, default=new_uuid)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=True, index=True)

    name = Column(String(200), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_meters = Column(Float, nullable=False, default=50)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Trip(Base):
    """A scheduled departure of a package, staffed by guides."""
    __tablename__ = "trips"

    id = Column(String(36), primary_key=True, default=new_uuid)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    package_id = Column(String(36), ForeignKey("packages.id"), nullable=True, index=True)
    meeting_point_id = Column(String(36), ForeignKey("meeting_points.id"), nullable=True)

    trip_code = Column(String(40), nullable=False, unique=True)
    trip_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(TripStatus), nullable=False, default=TripStatus.SCHEDULED)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    meeting_point = relationship("MeetingPoint", lazy="joined")


class GuideAttendance(Base):
    """Accepted check-in of a guide for a trip. One per guide per trip."""
    __tablename__ = "guide_attendance"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), nullable=False, index=True)
    guide_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    meeting_point_id = Column(String(36), ForeignKey("meeting_points.id"), nullable=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    distance_meters = Column(Integer, nullable=False)

    checked_in_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("trip_id", "guide_id", name="uq_attendance_trip_guide"),
    )


class GuideRewardAccount(Base):
    __tablename__ = "guide_reward_points"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    guide_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)

    balance = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_redeemed = Column(Integer, nullable=False, default=0)
    expired_points = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class GuideRewardTransaction(Base):
    """Guide reward ledger row. ``points`` is always positive; the type gives the direction."""
    __tablename__ = "guide_reward_transactions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    guide_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    transaction_type = Column(Enum(RewardTransactionType), nullable=False, index=True)
    source_type = Column(Enum(RewardSourceType), nullable=True)
    source_id = Column(String(100), nullable=True)

    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    expires_at = Column(DateTime, nullable=True, index=True)
    expired = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_reward_tx_guide_type_expiry", "guide_id", "transaction_type", "expires_at"),
    )


class GuideLicense(Base):
    """Guide ID card / license. Validity ends at the end of ``expiry_date``."""
    __tablename__ = "guide_licenses"

    id = Column(String(36), primary_key=True, default=new_uuid)
    guide_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    license_number = Column(String(50), nullable=False, unique=True)
    status = Column(Enum(LicenseStatus), nullable=False, default=LicenseStatus.ACTIVE, index=True)
    issued_at = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
