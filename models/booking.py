from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, Boolean,
    Numeric, Enum, Index, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import (
    Base, BigIntPK, new_uuid,
    BookingStatus, PaymentMethod, WalletTransactionType
)


class Package(Base):
    """Sellable tour package owned by a branch."""
    __tablename__ = "packages"

    id = Column(String(36), primary_key=True, default=new_uuid)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False, index=True)

    name = Column(String(300), nullable=False)
    destination = Column(String(200), nullable=True)
    duration_days = Column(Integer, nullable=False, default=1)

    is_active = Column(Boolean, nullable=False, default=True)
    show_to_mitra = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    prices = relationship(
        "PackagePrice",
        back_populates="package",
        order_by="PackagePrice.min_pax",
        lazy="selectin",
    )
    branch = relationship("Branch", lazy="joined")


class PackagePrice(Base):
    """
    Price tier by adult pax count.

    ``price_publish`` is the retail price, ``price_nta`` the net price a
    mitra pays. ``price_weekend`` replaces the publish price on Saturday and
    Sunday when no high season applies.
    """
    __tablename__ = "package_prices"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    package_id = Column(String(36), ForeignKey("packages.id"), nullable=False, index=True)

    min_pax = Column(Integer, nullable=False, default=1)
    max_pax = Column(Integer, nullable=False, default=50)
    price_publish = Column(Numeric(14, 2), nullable=False)
    price_nta = Column(Numeric(14, 2), nullable=False)
    price_weekend = Column(Numeric(14, 2), nullable=True)

    package = relationship("Package", back_populates="prices")


class SeasonCalendar(Base):
    """Date ranges carrying a price markup for a branch."""
    __tablename__ = "season_calendar"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False, index=True)

    name = Column(String(200), nullable=True)
    season_type = Column(String(30), nullable=False)  # high_season, peak_season, low_season
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    markup_type = Column(String(20), nullable=False, default="percent")  # percent, fixed
    markup_value = Column(Numeric(14, 2), nullable=False, default=0)

    __table_args__ = (
        Index("idx_season_branch_dates", "branch_id", "start_date", "end_date"),
    )


class Booking(Base):
    """
    A customer booking, created either directly or by a mitra on behalf of
    a customer. Amounts are stored as computed at booking time.
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_uuid)
    booking_code = Column(String(40), nullable=False, unique=True)

    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    package_id = Column(String(36), ForeignKey("packages.id"), nullable=False, index=True)
    mitra_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    source = Column(String(30), nullable=False, default="direct")
    trip_date = Column(Date, nullable=False, index=True)

    adult_pax = Column(Integer, nullable=False, default=1)
    child_pax = Column(Integer, nullable=False, default=0)
    infant_pax = Column(Integer, nullable=False, default=0)

    # Pricing snapshot
    price_per_adult = Column(Numeric(14, 2), nullable=False)
    price_per_child = Column(Numeric(14, 2), nullable=False)
    subtotal = Column(Numeric(14, 2), nullable=False)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)  # referral discount, already taken off total_amount
    nta_price_per_adult = Column(Numeric(14, 2), nullable=True)
    nta_total = Column(Numeric(14, 2), nullable=True)

    payment_method = Column(Enum(PaymentMethod), nullable=True)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING_PAYMENT, index=True)

    customer_name = Column(String(200), nullable=False)
    customer_phone = Column(String(30), nullable=False)
    customer_email = Column(String(255), nullable=True)
    special_requests = Column(Text, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(14, 2), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    package = relationship("Package", lazy="joined")

    __table_args__ = (
        Index("idx_booking_mitra_created", "mitra_id", "created_at"),
        Index("idx_booking_branch_status", "branch_id", "status"),
    )


class PartnerWallet(Base):
    """Prepaid deposit of a mitra; ``credit_limit`` allows going negative."""
    __tablename__ = "mitra_wallets"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    mitra_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)

    balance = Column(Numeric(14, 2), nullable=False, default=0)
    credit_limit = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class WalletTransaction(Base):
    __tablename__ = "mitra_wallet_transactions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    wallet_id = Column(BigIntPK, ForeignKey("mitra_wallets.id"), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True, index=True)

    transaction_type = Column(Enum(WalletTransactionType), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    balance_before = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("wallet_id", "booking_id", "transaction_type", name="uq_wallet_tx_booking"),
    )
