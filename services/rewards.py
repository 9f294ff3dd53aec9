"""
Guide reward points.

Same ledger shape as the customer points, with positive ``points`` on every
row and the direction given by the transaction type. Earned points expire a
year after they are awarded. Each award queues a push notification; a failed
notification is logged and never undoes the award.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InsufficientBalanceError, ValidationError
from models.base import NotificationChannel, NotificationStatus, RewardSourceType, RewardTransactionType
from models.guide import GuideRewardAccount, GuideRewardTransaction
from models.organization import NotificationLog
from services.notifications import queue_notification

logger = logging.getLogger(__name__)

REWARD_POINTS_EXPIRY_DAYS = 365

BADGE_POINTS = {
    "first_trip": 50,
    "rookie": 50,
    "experienced": 100,
    "excellent_service": 100,
    "expert": 150,
    "five_star": 150,
    "master": 200,
    "zero_complaints": 200,
    "clean_record": 200,
}

LEVEL_UP_POINTS = {
    ("bronze", "silver"): 200,
    ("silver", "gold"): 300,
    ("gold", "platinum"): 500,
    ("platinum", "diamond"): 1000,
}

MILESTONE_POINTS = {
    "first_million": 500,
    "five_million": 1000,
    "ten_million": 2000,
}


@dataclass(frozen=True)
class RewardBalance:
    balance: int
    lifetime_earned: int
    lifetime_redeemed: int
    expired_points: int


# ============================================================================
# Calculators
# ============================================================================

def calculate_challenge_points(challenge_type: str, target_value: float) -> int:
    if challenge_type == "trip_count":
        return min(500, int(target_value // 10) * 100)
    if challenge_type == "rating":
        return 200 if target_value >= 5.0 else 100
    if challenge_type == "earnings":
        return int(target_value // 1000)
    if challenge_type == "perfect_month":
        return 1000
    return 100


def calculate_badge_points(badge_id: str) -> int:
    return BADGE_POINTS.get(badge_id, 50)


def calculate_level_up_points(from_level: str, to_level: str) -> int:
    return LEVEL_UP_POINTS.get((from_level, to_level), 0)


def calculate_performance_bonus_points(bonus_amount: float) -> int:
    """10% of a performance bonus, rounded down."""
    return int(bonus_amount * 0.1 // 1)


def calculate_milestone_points(milestone_type: str) -> int:
    return MILESTONE_POINTS.get(milestone_type, 0)


# ============================================================================
# Ledger
# ============================================================================

async def _get_or_create_account(db: AsyncSession, guide_id: str) -> GuideRewardAccount:
    result = await db.execute(select(GuideRewardAccount).where(GuideRewardAccount.guide_id == guide_id))
    account = result.scalar_one_or_none()
    if account is None:
        account = GuideRewardAccount(
            guide_id=guide_id,
            balance=0,
            lifetime_earned=0,
            lifetime_redeemed=0,
            expired_points=0,
        )
        db.add(account)
        await db.flush()
    return account


async def get_balance(db: AsyncSession, guide_id: str) -> RewardBalance:
    result = await db.execute(select(GuideRewardAccount).where(GuideRewardAccount.guide_id == guide_id))
    account = result.scalar_one_or_none()
    if account is None:
        return RewardBalance(0, 0, 0, 0)
    return RewardBalance(
        balance=account.balance,
        lifetime_earned=account.lifetime_earned,
        lifetime_redeemed=account.lifetime_redeemed,
        expired_points=account.expired_points,
    )


async def award_points(
    db: AsyncSession,
    guide_id: str,
    points: int,
    source_type: RewardSourceType,
    source_id: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> GuideRewardTransaction:
    """Credit reward points to a guide and queue an "earned" notification."""
    if points <= 0:
        raise ValidationError(
            "Points must be positive",
            context={"field_name": "points", "field_value": points},
        )
    source_type = RewardSourceType(source_type)

    account = await _get_or_create_account(db, guide_id)
    balance_after = account.balance + points

    transaction = GuideRewardTransaction(
        guide_id=guide_id,
        transaction_type=RewardTransactionType.EARN,
        source_type=source_type,
        source_id=source_id,
        points=points,
        balance_after=balance_after,
        description=description,
        extra_metadata=metadata,
        expires_at=datetime.utcnow() + timedelta(days=REWARD_POINTS_EXPIRY_DAYS),
    )
    db.add(transaction)
    account.balance = balance_after
    account.lifetime_earned = account.lifetime_earned + points
    await db.commit()

    logger.info(f"Reward points awarded: guide={guide_id}, points={points}, source={source_type.value}")

    await _notify_points_earned(
        db, guide_id, points, source_type.value,
        description or f"Anda memperoleh {points} poin reward",
    )
    return transaction


async def redeem_points(
    db: AsyncSession,
    guide_id: str,
    points: int,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> GuideRewardTransaction:
    if points <= 0:
        raise ValidationError(
            "Invalid points amount for redemption",
            context={"field_name": "points", "field_value": points},
        )

    account = await _get_or_create_account(db, guide_id)
    if account.balance < points:
        raise InsufficientBalanceError(
            f"Insufficient reward points. Available: {account.balance}",
            context={"available": account.balance, "requested": points},
        )

    balance_after = account.balance - points
    transaction = GuideRewardTransaction(
        guide_id=guide_id,
        transaction_type=RewardTransactionType.REDEEM,
        points=points,
        balance_after=balance_after,
        description=description or f"Tukar {points} poin reward",
        extra_metadata=metadata,
    )
    db.add(transaction)
    account.balance = balance_after
    account.lifetime_redeemed = account.lifetime_redeemed + points
    await db.commit()

    logger.info(f"Reward points redeemed: guide={guide_id}, points={points}")
    return transaction


async def expire_points(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Expire earned reward points past ``expires_at``.

    Each earn row is marked once; the ``expire`` row written for it covers
    what is left of it in the balance, so the balance never goes negative.

    Returns:
        Total points expired
    """
    now = now or datetime.utcnow()
    stmt = (
        select(GuideRewardTransaction)
        .where(
            GuideRewardTransaction.transaction_type == RewardTransactionType.EARN,
            GuideRewardTransaction.expires_at.is_not(None),
            GuideRewardTransaction.expires_at <= now,
            GuideRewardTransaction.expired.is_(False),
        )
        .order_by(GuideRewardTransaction.guide_id, GuideRewardTransaction.expires_at)
    )
    earned = (await db.execute(stmt)).scalars().all()

    accounts: Dict[str, GuideRewardAccount] = {}
    total_expired = 0
    for entry in earned:
        account = accounts.get(entry.guide_id)
        if account is None:
            account = await _get_or_create_account(db, entry.guide_id)
            accounts[entry.guide_id] = account

        entry.expired = True
        amount = min(entry.points, account.balance)
        if amount <= 0:
            continue

        balance_after = account.balance - amount
        db.add(GuideRewardTransaction(
            guide_id=entry.guide_id,
            transaction_type=RewardTransactionType.EXPIRE,
            source_id=str(entry.id),
            points=amount,
            balance_after=balance_after,
            description=f"{amount} poin reward kadaluarsa",
        ))
        account.balance = balance_after
        account.expired_points = account.expired_points + amount
        total_expired += amount

    await db.commit()
    if earned:
        logger.info(f"Expired {total_expired} reward points across {len(accounts)} guides")
    return total_expired


async def get_expiring_points(
    db: AsyncSession,
    guide_id: str,
    days: int = 30,
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Earned points expiring within ``days``, summed per expiry date (earliest first)."""
    now = now or datetime.utcnow()
    stmt = (
        select(GuideRewardTransaction.points, GuideRewardTransaction.expires_at)
        .where(
            GuideRewardTransaction.guide_id == guide_id,
            GuideRewardTransaction.transaction_type == RewardTransactionType.EARN,
            GuideRewardTransaction.expires_at.is_not(None),
            GuideRewardTransaction.expires_at > now,
            GuideRewardTransaction.expires_at <= now + timedelta(days=days),
        )
        .order_by(GuideRewardTransaction.expires_at.asc())
    )
    rows = (await db.execute(stmt)).all()

    grouped: "OrderedDict[str, int]" = OrderedDict()
    for points, expires_at in rows:
        key = expires_at.date().isoformat()
        grouped[key] = grouped.get(key, 0) + points

    return [{"points": points, "expires_at": day} for day, points in grouped.items()]


# ============================================================================
# Notifications
# ============================================================================

async def _notify_points_earned(
    db: AsyncSession,
    guide_id: str,
    points: int,
    source: str,
    description: str
) -> None:
    try:
        await queue_notification(
            db,
            user_id=guide_id,
            subject="Poin Reward Diperoleh!",
            body=description,
            channel=NotificationChannel.PUSH,
            entity_type="reward_points",
            metadata={"points": points, "source": source, "description": description},
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to create points earned notification for {guide_id}: {e}")


async def notify_expiring_points(
    db: AsyncSession,
    guide_id: str,
    total_expiring: int,
    days_until_expiry: int
) -> NotificationLog:
    """Refresh the pending "expiring" notification for a guide, or create it."""
    body = (
        f"Anda memiliki {total_expiring:,} poin yang akan kadaluarsa dalam "
        f"{days_until_expiry} hari. Tukar sekarang!"
    ).replace(",", ".")
    metadata = {"total_expiring": total_expiring, "days_until_expiry": days_until_expiry}

    stmt = (
        select(NotificationLog)
        .where(
            NotificationLog.user_id == guide_id,
            NotificationLog.entity_type == "reward_points_expiring",
            NotificationLog.status == NotificationStatus.PENDING.value,
        )
        .order_by(NotificationLog.created_at.desc())
        .limit(1)
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()

    if existing is not None:
        existing.body = body
        existing.extra_metadata = metadata
        await db.commit()
        return existing

    return await queue_notification(
        db,
        user_id=guide_id,
        subject="Poin Akan Kadaluarsa!",
        body=body,
        channel=NotificationChannel.PUSH,
        entity_type="reward_points_expiring",
        metadata=metadata,
    )
