"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (UserRole, BookingStatus, ...)
    organization: Branch, User, Setting, NotificationLog
    booking: Package, PackagePrice, SeasonCalendar, Booking, PartnerWallet, WalletTransaction
    loyalty: LoyaltyAccount, LoyaltyTransaction, ReferralCode, Referral
    guide: MeetingPoint, Trip, GuideAttendance, GuideRewardAccount,
           GuideRewardTransaction, GuideLicense

Column types are portable (JSON, Numeric, String ids) so the same models
run on PostgreSQL in production and SQLite in tests. Uniqueness and foreign
keys are declared here and enforced by the database; services rely on them
instead of locking.

Usage:
    from models import Booking, User
    from models.base import UserRole, BookingStatus
"""

from models.base import Base
from models.organization import Branch, User, Setting, NotificationLog
from models.booking import (
    Package, PackagePrice, SeasonCalendar, Booking, PartnerWallet, WalletTransaction
)
from models.loyalty import LoyaltyAccount, LoyaltyTransaction, ReferralCode, Referral
from models.guide import (
    MeetingPoint, Trip, GuideAttendance, GuideRewardAccount, GuideRewardTransaction, GuideLicense
)

__all__ = [
    "Base",
    "Branch",
    "User",
    "Setting",
    "NotificationLog",
    "Package",
    "PackagePrice",
    "SeasonCalendar",
    "Booking",
    "PartnerWallet",
    "WalletTransaction",
    "LoyaltyAccount",
    "LoyaltyTransaction",
    "ReferralCode",
    "Referral",
    "MeetingPoint",
    "Trip",
    "GuideAttendance",
    "GuideRewardAccount",
    "GuideRewardTransaction",
    "GuideLicense",
]
