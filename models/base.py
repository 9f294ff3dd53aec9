from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base
import enum
import uuid

Base = declarative_base()

# BIGINT identity on PostgreSQL, rowid alias on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def new_uuid() -> str:
    return str(uuid.uuid4())


# ============================================================================
# ENUMS
# ============================================================================

class UserRole(str, enum.Enum):
    """Platform roles"""
    SUPER_ADMIN = "super_admin"
    OPS_ADMIN = "ops_admin"
    FINANCE_MANAGER = "finance_manager"
    MARKETING = "marketing"
    BRANCH_ADMIN = "branch_admin"
    GUIDE = "guide"
    MITRA = "mitra"
    CORPORATE = "corporate"
    CUSTOMER = "customer"


class BookingStatus(str, enum.Enum):
    """Booking lifecycle status"""
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    PAID = "paid"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    WALLET = "wallet"
    INVOICE = "invoice"


class WalletTransactionType(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class LoyaltyTransactionType(str, enum.Enum):
    """Customer AeroPoints ledger entry types"""
    EARN_BOOKING = "earn_booking"
    EARN_REFERRAL = "earn_referral"
    EARN_REVIEW = "earn_review"
    REDEEM = "redeem"
    EXPIRE = "expire"
    ADJUSTMENT = "adjustment"


class RewardTransactionType(str, enum.Enum):
    """Guide reward ledger entry types"""
    EARN = "earn"
    REDEEM = "redeem"
    EXPIRE = "expire"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class RewardSourceType(str, enum.Enum):
    CHALLENGE = "challenge"
    BADGE = "badge"
    PERFORMANCE = "performance"
    LEVEL_UP = "level_up"
    MILESTONE = "milestone"
    SPECIAL = "special"
    MANUAL = "manual"
    ADJUSTMENT = "adjustment"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class LicenseStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"
    EXPIRED = "expired"


class TripStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationChannel(str, enum.Enum):
    PUSH = "push"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
