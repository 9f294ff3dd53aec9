from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, Numeric, Text, Integer, Index, UniqueConstraint, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK, UserRole, new_uuid


class Branch(Base):
    """
    A physical business location. Nearly every row in the system is
    partitioned by branch; tax policy is configured per branch.
    """
    __tablename__ = "branches"

    id = Column(String(36), primary_key=True, default=new_uuid)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(200), nullable=False)

    tax_rate = Column(Numeric(5, 4), nullable=False, default=0.11)
    tax_inclusive = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    users = relationship("User", back_populates="branch")


class User(Base):
    """Platform user. Role and branch drive every access decision."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(30), nullable=True)

    role = Column(Enum(UserRole), nullable=False, default=UserRole.CUSTOMER, index=True)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    branch = relationship("Branch", back_populates="users")

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN


class Setting(Base):
    """
    Key/value configuration row. ``branch_id`` NULL means global; a branch
    row overrides the global row with the same key.
    """
    __tablename__ = "settings"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    key = Column(String(200), nullable=False, index=True)
    value = Column(Text, nullable=True)
    value_type = Column(String(20), nullable=False, default="string")  # string, number, boolean, json
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=True, index=True)

    description = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_sensitive = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("key", "branch_id", name="uq_settings_key_branch"),
        Index("idx_settings_public", "is_public", "branch_id"),
    )


class NotificationLog(Base):
    """Outgoing notification queue and audit trail."""
    __tablename__ = "notification_logs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    channel = Column(String(20), nullable=False, default="push")
    recipient = Column(String(255), nullable=True)  # phone number / email when channel needs one
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    entity_type = Column(String(100), nullable=True, index=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    attempts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)
