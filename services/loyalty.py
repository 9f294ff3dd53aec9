"""
Customer AeroPoints ledger.

Every change is a sequential read-then-write: read the account (created on
first use), insert a ledger row with before and after balances, update the
account. Concurrent awards for the same booking are stopped by the unique
constraint on (account, type, booking), surfaced here as ``ConflictError``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, InsufficientBalanceError, ValidationError
from models.base import LoyaltyTransactionType
from models.loyalty import LoyaltyAccount, LoyaltyTransaction
from services.settings import LoyaltyRules, get_loyalty_rules

logger = logging.getLogger(__name__)

EARN_TYPES = (
    LoyaltyTransactionType.EARN_BOOKING,
    LoyaltyTransactionType.EARN_REFERRAL,
    LoyaltyTransactionType.EARN_REVIEW,
)


@dataclass(frozen=True)
class PointsBalance:
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    value_in_rupiah: int


@dataclass(frozen=True)
class RedeemResult:
    points: int
    discount_amount: int
    balance_after: int
    transaction_id: int


def calculate_points_from_booking(booking_value, rules: LoyaltyRules = LoyaltyRules()) -> int:
    """``floor(value / 100000) * points_per_100k``, or 0 below the minimum."""
    value = Decimal(str(booking_value))
    if value < rules.min_booking_for_points:
        return 0
    return int(value // 100_000) * rules.points_per_100k


def calculate_discount_from_points(points: int, rules: LoyaltyRules = LoyaltyRules()) -> int:
    return points * rules.redemption_value


def _format_rupiah(value) -> str:
    return f"{int(value):,}".replace(",", ".")


async def ensure_account(db: AsyncSession, user_id: str) -> LoyaltyAccount:
    """
    The customer's points account, created on first use.

    Call before making other changes in the session: losing the race to
    create the account rolls the session back and re-reads the winner's row.
    """
    stmt = select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id)
    account = (await db.execute(stmt)).scalar_one_or_none()
    if account is not None:
        return account

    account = LoyaltyAccount(user_id=user_id, balance=0, lifetime_earned=0, lifetime_spent=0)
    db.add(account)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Points account for {user_id} created concurrently, reloading")
        account = (await db.execute(stmt)).scalar_one()
    return account


async def get_balance(
    db: AsyncSession,
    user_id: str,
    rules: Optional[LoyaltyRules] = None
) -> PointsBalance:
    """Current balance; zeroes when the customer has no account yet."""
    rules = rules or await get_loyalty_rules(db)
    result = await db.execute(select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id))
    account = result.scalar_one_or_none()
    if account is None:
        return PointsBalance(0, 0, 0, 0)
    return PointsBalance(
        balance=account.balance,
        lifetime_earned=account.lifetime_earned,
        lifetime_spent=account.lifetime_spent,
        value_in_rupiah=calculate_discount_from_points(account.balance, rules),
    )


async def get_history(
    db: AsyncSession,
    user_id: str,
    limit: int = 20,
    offset: int = 0
) -> List[LoyaltyTransaction]:
    """Ledger rows, newest first."""
    stmt = (
        select(LoyaltyTransaction)
        .join(LoyaltyAccount, LoyaltyAccount.id == LoyaltyTransaction.loyalty_id)
        .where(LoyaltyAccount.user_id == user_id)
        .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def award_points(
    db: AsyncSession,
    user_id: str,
    points: int,
    transaction_type: LoyaltyTransactionType = LoyaltyTransactionType.EARN_BOOKING,
    booking_id: Optional[str] = None,
    referral_code: Optional[str] = None,
    description: Optional[str] = None,
    rules: Optional[LoyaltyRules] = None
) -> LoyaltyTransaction:
    """
    Credit points to a customer.

    Raises:
        ValidationError: ``points`` is not positive
        ConflictError: Points of this type were already awarded for the booking
    """
    if points <= 0:
        raise ValidationError(
            "Points must be positive",
            context={"field_name": "points", "field_value": points},
        )
    rules = rules or await get_loyalty_rules(db)
    account = await ensure_account(db, user_id)

    try:
        balance_before = account.balance
        balance_after = balance_before + points

        transaction = LoyaltyTransaction(
            loyalty_id=account.id,
            transaction_type=transaction_type,
            points=points,
            balance_before=balance_before,
            balance_after=balance_after,
            booking_id=booking_id,
            referral_code=referral_code,
            description=description or f"Earned {points} points",
            expires_at=datetime.utcnow() + timedelta(days=rules.points_expiry_days),
        )
        db.add(transaction)

        account.balance = balance_after
        account.lifetime_earned = account.lifetime_earned + points
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Points already awarded",
            context={"user_id": user_id, "booking_id": booking_id, "type": transaction_type.value},
            original_exception=e,
        ) from e

    logger.info(f"Awarded {points} points to {user_id} ({transaction_type.value}), balance {balance_after}")
    return transaction


async def award_points_for_booking(
    db: AsyncSession,
    user_id: str,
    booking_id: str,
    booking_value,
    rules: Optional[LoyaltyRules] = None
) -> Optional[LoyaltyTransaction]:
    """Award points for a paid booking; ``None`` when the value earns nothing."""
    rules = rules or await get_loyalty_rules(db)
    points = calculate_points_from_booking(booking_value, rules)
    if points <= 0:
        logger.info(f"No points to award for booking {booking_id} (value {booking_value})")
        return None

    return await award_points(
        db,
        user_id,
        points,
        LoyaltyTransactionType.EARN_BOOKING,
        booking_id=booking_id,
        description=f"Poin dari booking senilai Rp {_format_rupiah(booking_value)}",
        rules=rules,
    )


async def award_points_for_review(
    db: AsyncSession,
    user_id: str,
    booking_id: str,
    rules: Optional[LoyaltyRules] = None
) -> LoyaltyTransaction:
    rules = rules or await get_loyalty_rules(db)
    return await award_points(
        db,
        user_id,
        rules.review_bonus,
        LoyaltyTransactionType.EARN_REVIEW,
        booking_id=booking_id,
        description="Bonus poin untuk review",
        rules=rules,
    )


async def redeem_points(
    db: AsyncSession,
    user_id: str,
    points: int,
    booking_id: Optional[str] = None,
    rules: Optional[LoyaltyRules] = None
) -> RedeemResult:
    """
    Spend points for a discount.

    Raises:
        ValidationError: ``points`` is not positive
        InsufficientBalanceError: Balance is lower than ``points``
    """
    if points <= 0:
        raise ValidationError(
            "Invalid points amount",
            context={"field_name": "points", "field_value": points},
        )
    rules = rules or await get_loyalty_rules(db)

    account = await ensure_account(db, user_id)
    if account.balance < points:
        raise InsufficientBalanceError(
            f"Insufficient points. Available: {account.balance}",
            context={"available": account.balance, "requested": points},
        )

    discount = calculate_discount_from_points(points, rules)
    balance_before = account.balance
    balance_after = balance_before - points

    transaction = LoyaltyTransaction(
        loyalty_id=account.id,
        transaction_type=LoyaltyTransactionType.REDEEM,
        points=-points,
        balance_before=balance_before,
        balance_after=balance_after,
        booking_id=booking_id,
        description=f"Redeem {points} poin untuk diskon Rp {_format_rupiah(discount)}",
    )
    db.add(transaction)
    account.balance = balance_after
    account.lifetime_spent = account.lifetime_spent + points

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Points already redeemed for this booking",
            context={"user_id": user_id, "booking_id": booking_id},
            original_exception=e,
        ) from e

    logger.info(f"Redeemed {points} points for {user_id}, balance {balance_after}")
    return RedeemResult(
        points=points,
        discount_amount=discount,
        balance_after=balance_after,
        transaction_id=transaction.id,
    )


async def can_redeem(db: AsyncSession, user_id: str, points: int) -> bool:
    if points <= 0:
        return False
    result = await db.execute(select(LoyaltyAccount.balance).where(LoyaltyAccount.user_id == user_id))
    balance = result.scalar_one_or_none() or 0
    return balance >= points


async def estimate_points(
    db: AsyncSession,
    booking_value,
    branch_id: Optional[str] = None
) -> dict:
    """Points a booking of ``booking_value`` would earn and what they are worth."""
    rules = await get_loyalty_rules(db, branch_id)
    points = calculate_points_from_booking(booking_value, rules)
    return {"points": points, "value": calculate_discount_from_points(points, rules)}


async def expire_points(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Expire earn entries past ``expires_at``.

    Each expiring entry writes an ``expire`` row for what is still left of it
    in the balance, never driving the balance negative.

    Returns:
        Total points expired
    """
    now = now or datetime.utcnow()
    stmt = (
        select(LoyaltyTransaction)
        .where(
            LoyaltyTransaction.transaction_type.in_(EARN_TYPES),
            LoyaltyTransaction.expires_at.is_not(None),
            LoyaltyTransaction.expires_at <= now,
            LoyaltyTransaction.expired.is_(False),
        )
        .order_by(LoyaltyTransaction.loyalty_id, LoyaltyTransaction.expires_at)
    )
    earned = (await db.execute(stmt)).scalars().all()

    accounts = {}
    total_expired = 0
    for entry in earned:
        account = accounts.get(entry.loyalty_id)
        if account is None:
            account = await db.get(LoyaltyAccount, entry.loyalty_id)
            accounts[entry.loyalty_id] = account

        entry.expired = True
        amount = min(entry.points, account.balance)
        if amount <= 0:
            continue

        balance_before = account.balance
        db.add(LoyaltyTransaction(
            loyalty_id=account.id,
            transaction_type=LoyaltyTransactionType.EXPIRE,
            points=-amount,
            balance_before=balance_before,
            balance_after=balance_before - amount,
            description=f"{amount} poin kadaluarsa",
        ))
        account.balance = balance_before - amount
        total_expired += amount

    await db.commit()
    if earned:
        logger.info(f"Expired {total_expired} points across {len(accounts)} accounts")
    return total_expired
