"""
Guide license expiry.

A license is valid through the whole of its expiry date and expired from
the following day. Suspended and revoked licenses keep their stored status.
"""

from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import LicenseStatus
from models.guide import GuideLicense
from models.organization import User
from services.branch_scope import apply_branch_filter

EXPIRING_SOON = "expiring_soon"
DEFAULT_WARNING_DAYS = 30


def days_until_expiry(expiry_date: date, today: Optional[date] = None) -> int:
    """Whole days left; negative once the date has passed."""
    today = today or date.today()
    return (expiry_date - today).days


def is_expired(expiry_date: date, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return expiry_date < today


def license_status(
    license: GuideLicense,
    today: Optional[date] = None,
    warning_days: int = DEFAULT_WARNING_DAYS
) -> str:
    """``active``, ``expiring_soon``, ``expired``, or the stored suspended/revoked status."""
    stored = LicenseStatus(license.status)
    if stored in (LicenseStatus.SUSPENDED, LicenseStatus.REVOKED):
        return stored.value

    if is_expired(license.expiry_date, today):
        return LicenseStatus.EXPIRED.value
    if days_until_expiry(license.expiry_date, today) <= warning_days:
        return EXPIRING_SOON
    return LicenseStatus.ACTIVE.value


async def get_active_license(db: AsyncSession, guide_id: str) -> Optional[GuideLicense]:
    """Most recently expiring license of the guide that is not suspended or revoked."""
    stmt = (
        select(GuideLicense)
        .where(
            GuideLicense.guide_id == guide_id,
            GuideLicense.status.in_([LicenseStatus.ACTIVE, LicenseStatus.EXPIRED]),
        )
        .order_by(GuideLicense.expiry_date.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_expiring_licenses(
    db: AsyncSession,
    user: User,
    within_days: int = DEFAULT_WARNING_DAYS,
    today: Optional[date] = None
) -> List[GuideLicense]:
    """Active licenses expiring within ``within_days``, limited to the user's branch."""
    today = today or date.today()
    stmt = (
        select(GuideLicense)
        .join(User, User.id == GuideLicense.guide_id)
        .where(
            GuideLicense.status == LicenseStatus.ACTIVE,
            GuideLicense.expiry_date >= today,
            GuideLicense.expiry_date <= today + timedelta(days=within_days),
        )
        .order_by(GuideLicense.expiry_date.asc())
    )
    stmt = apply_branch_filter(stmt, User, user)
    result = await db.execute(stmt)
    return list(result.scalars().all())
