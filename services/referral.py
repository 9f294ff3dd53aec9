"""
Member-get-member referrals.

A new customer applies someone's ``AERO-XXXXXX`` code and gets a discount on
the first booking. When that booking's trip completes, the referrer is paid
in AeroPoints.
"""

import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, NotFoundError, ValidationError
from models.base import LoyaltyTransactionType, ReferralStatus
from models.loyalty import Referral, ReferralCode
from services import loyalty

logger = logging.getLogger(__name__)

REFEREE_DISCOUNT = Decimal("50000")
REFERRER_POINTS = 10000
CODE_PREFIX = "AERO-"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_ATTEMPTS = 5


def generate_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))


async def get_or_generate_code(db: AsyncSession, user_id: str) -> ReferralCode:
    """The user's referral code, created on first request."""
    result = await db.execute(select(ReferralCode).where(ReferralCode.user_id == user_id))
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    last_error: Optional[Exception] = None
    for attempt in range(CODE_ATTEMPTS):
        row = ReferralCode(user_id=user_id, code=generate_code(), is_active=True)
        db.add(row)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            # Lost a race for this user's row: return the winner
            result = await db.execute(select(ReferralCode).where(ReferralCode.user_id == user_id))
            existing = result.scalar_one_or_none()
            if existing is not None:
                return existing
            logger.warning(f"Referral code collision (attempt {attempt + 1}/{CODE_ATTEMPTS})")
            last_error = e
            continue
        logger.info(f"Referral code {row.code} created for {user_id}")
        return row

    raise ConflictError(
        "Could not generate a unique referral code",
        context={"user_id": user_id, "attempts": CODE_ATTEMPTS},
        original_exception=last_error,
    )


async def validate_code(db: AsyncSession, code: str) -> Dict[str, Any]:
    """``{"valid": bool, "referrer_id" | "error": ...}``; lookup ignores case."""
    normalized = (code or "").strip().upper()
    result = await db.execute(select(ReferralCode).where(ReferralCode.code == normalized))
    row = result.scalar_one_or_none()

    if row is None:
        return {"valid": False, "error": "Kode referral tidak ditemukan"}
    if not row.is_active:
        return {"valid": False, "error": "Kode referral sudah tidak aktif"}
    return {"valid": True, "referrer_id": row.user_id}


async def apply_code(db: AsyncSession, new_user_id: str, code: str) -> Referral:
    """
    Register ``new_user_id`` as referred by the owner of ``code``.

    Raises:
        ValidationError: Unknown, inactive, or own code
        ConflictError: The user was already referred
    """
    normalized = (code or "").strip().upper()
    validation = await validate_code(db, normalized)
    if not validation["valid"]:
        raise ValidationError(validation["error"], context={"field_name": "code", "field_value": normalized})

    referrer_id = validation["referrer_id"]
    if referrer_id == new_user_id:
        raise ValidationError(
            "Tidak dapat menggunakan kode referral sendiri",
            context={"field_name": "code", "field_value": normalized},
        )

    referral = Referral(
        referrer_id=referrer_id,
        referee_id=new_user_id,
        referral_code=normalized,
        status=ReferralStatus.PENDING,
        referee_discount=REFEREE_DISCOUNT,
        referrer_points=REFERRER_POINTS,
    )
    db.add(referral)

    code_row = (await db.execute(select(ReferralCode).where(ReferralCode.code == normalized))).scalar_one()
    code_row.total_referrals = code_row.total_referrals + 1

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Anda sudah menggunakan kode referral sebelumnya",
            context={"user_id": new_user_id},
            original_exception=e,
        ) from e

    logger.info(f"Referral applied: referee={new_user_id}, code={normalized}")
    return referral


async def get_pending_discount(db: AsyncSession, user_id: str) -> Dict[str, Any]:
    """Unclaimed first-booking discount for a referred user."""
    stmt = select(Referral).where(
        Referral.referee_id == user_id,
        Referral.status == ReferralStatus.PENDING,
        Referral.referee_reward_claimed.is_(False),
    )
    referral = (await db.execute(stmt)).scalar_one_or_none()
    if referral is None:
        return {"has_discount": False, "amount": Decimal("0"), "referral_id": None}
    return {"has_discount": True, "amount": referral.referee_discount, "referral_id": referral.id}


async def claim_referee_discount(
    db: AsyncSession,
    referral_id: int,
    booking_id: str,
    commit: bool = True
) -> Referral:
    """
    Mark the discount used by ``booking_id``; the referral stays pending until the trip completes.

    With ``commit=False`` the change is only flushed, so a booking can claim
    the discount in its own transaction.
    """
    referral = await db.get(Referral, referral_id)
    if referral is None:
        raise NotFoundError("Referral not found", context={"referral_id": referral_id})
    if referral.referee_reward_claimed:
        raise ConflictError("Referral discount already claimed", context={"referral_id": referral_id})

    referral.referee_reward_claimed = True
    referral.booking_id = booking_id
    if commit:
        await db.commit()
    else:
        await db.flush()

    logger.info(f"Referee discount claimed: referral={referral_id}, booking={booking_id}")
    return referral


async def complete_referral(db: AsyncSession, booking_id: str) -> bool:
    """
    Complete the pending referral tied to ``booking_id`` and pay the referrer.

    Returns ``False`` when no pending referral uses the booking.
    """
    stmt = select(Referral).where(
        Referral.booking_id == booking_id,
        Referral.status == ReferralStatus.PENDING,
    )
    referral = (await db.execute(stmt)).scalar_one_or_none()
    if referral is None:
        return False

    # Account first: creating it may roll back the session
    referral_id = referral.id
    await loyalty.ensure_account(db, referral.referrer_id)
    referral = await db.get(Referral, referral_id, populate_existing=True)

    referral.status = ReferralStatus.COMPLETED
    referral.completed_at = datetime.utcnow()
    referral.referrer_reward_claimed = True

    code_row = (await db.execute(
        select(ReferralCode).where(ReferralCode.code == referral.referral_code)
    )).scalar_one_or_none()
    if code_row is not None:
        code_row.total_bookings = code_row.total_bookings + 1

    # Commits the referral changes together with the ledger row
    await loyalty.award_points(
        db,
        referral.referrer_id,
        referral.referrer_points,
        LoyaltyTransactionType.EARN_REFERRAL,
        booking_id=booking_id,
        referral_code=referral.referral_code,
        description=f"Bonus referral {referral.referral_code}",
    )

    logger.info(f"Referral completed: booking={booking_id}, referrer={referral.referrer_id}")
    return True


async def get_stats(db: AsyncSession, user_id: str) -> Dict[str, Any]:
    code = await get_or_generate_code(db, user_id)
    stmt = (
        select(Referral)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc())
    )
    referrals = (await db.execute(stmt)).scalars().all()

    items = [
        {
            "id": r.id,
            "referee_id": r.referee_id,
            "status": ReferralStatus(r.status).value,
            "created_at": r.created_at,
            "completed_at": r.completed_at,
            "points_earned": r.referrer_points if r.referrer_reward_claimed else 0,
        }
        for r in referrals
    ]

    return {
        "code": code.code,
        "total_referrals": code.total_referrals,
        "successful_referrals": sum(1 for i in items if i["status"] == ReferralStatus.COMPLETED.value),
        "pending_referrals": sum(1 for i in items if i["status"] == ReferralStatus.PENDING.value),
        "total_points_earned": sum(i["points_earned"] for i in items),
        "referrals": items,
    }


def generate_share_message(code: str) -> Dict[str, str]:
    text = (
        f'Booking trip pakai kode referral saya "{code}" dan dapat diskon Rp 50.000! '
        f"Download sekarang di aerotravel.co.id"
    )
    encoded = quote(text, safe="")
    return {
        "text": text,
        "whatsapp_url": f"https://wa.me/?text={encoded}",
        "twitter_url": f"https://twitter.com/intent/tweet?text={encoded}",
    }
