"""
Partner (mitra) bookings.

A mitra books at NTA prices and pays either from a prepaid wallet, which
confirms the booking immediately, or by invoice. Drafts are priced but not
paid. Cancelling before the trip refunds part of the NTA total to the wallet.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from models.base import BookingStatus, NotificationChannel, PaymentMethod, UserRole, WalletTransactionType
from models.booking import Booking, Package, PartnerWallet, WalletTransaction
from models.organization import User
from schemas.bookings import BookingCreate, BookingQuoteRequest
from services import loyalty, referral
from services.branch_scope import apply_branch_filter, ensure_branch_access
from services.notifications import queue_notification
from services.pricing import BookingQuote, find_high_season, quote_booking, to_money

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
    BookingStatus.CONFIRMED,
    BookingStatus.PAID,
)

COMPLETABLE_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.PAID,
    BookingStatus.ONGOING,
)

# (minimum days before trip, refund percent), checked in order
REFUND_SCHEDULE = ((30, 100), (14, 50), (7, 25))

CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class RefundCalculation:
    refundable: bool
    refund_percentage: int
    refund_amount: Decimal
    days_before_trip: int
    policy: str


@dataclass(frozen=True)
class BookingCompletion:
    booking: Booking
    points_awarded: int
    referral_completed: bool


def resolve_partner_id(user: User) -> str:
    """The partner a user books for. Only mitra accounts may book."""
    if UserRole(user.role) != UserRole.MITRA:
        raise PermissionDeniedError(
            "Partner access required",
            context={"user_id": user.id, "role": user.role},
        )
    return user.id


def generate_booking_code(today: Optional[date] = None) -> str:
    today = today or date.today()
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
    return f"BK-{today:%Y%m%d}-{suffix}"


def calculate_refund(trip_date: date, amount, today: Optional[date] = None) -> RefundCalculation:
    """Refund share of ``amount`` by how many days remain before the trip."""
    today = today or date.today()
    days = (trip_date - today).days
    amount = Decimal(str(amount or 0))

    for min_days, percent in REFUND_SCHEDULE:
        if days >= min_days:
            return RefundCalculation(
                refundable=True,
                refund_percentage=percent,
                refund_amount=to_money(amount * percent / 100),
                days_before_trip=days,
                policy=f"Refund {percent}% (pembatalan >= {min_days} hari sebelum trip)",
            )

    return RefundCalculation(
        refundable=False,
        refund_percentage=0,
        refund_amount=Decimal("0.00"),
        days_before_trip=days,
        policy="Tidak ada refund (pembatalan kurang dari 7 hari sebelum trip)",
    )


def can_cancel(booking: Booking, today: Optional[date] = None) -> Tuple[bool, Optional[str]]:
    today = today or date.today()
    if BookingStatus(booking.status) not in CANCELLABLE_STATUSES:
        return False, f"Booking dengan status {BookingStatus(booking.status).value} tidak dapat dibatalkan"
    if booking.trip_date < today:
        return False, "Trip sudah lewat"
    return True, None


async def get_bookable_package(db: AsyncSession, package_id: str) -> Package:
    stmt = select(Package).where(
        Package.id == package_id,
        Package.is_active.is_(True),
        Package.show_to_mitra.is_(True),
    )
    package = (await db.execute(stmt)).unique().scalar_one_or_none()
    if package is None:
        raise NotFoundError("Package not found", context={"package_id": package_id})
    return package


async def quote_for_package(
    db: AsyncSession,
    package: Package,
    request: BookingQuoteRequest
) -> BookingQuote:
    """Price a request with the package branch's tax policy and season calendar."""
    season = await find_high_season(db, package.branch_id, request.trip_date)
    branch = package.branch
    return quote_booking(
        package.prices,
        trip_date=request.trip_date,
        adult_pax=request.adult_pax,
        child_pax=request.child_pax,
        infant_pax=request.infant_pax,
        season=season,
        tax_rate=branch.tax_rate if branch is not None else None,
        tax_inclusive=bool(branch.tax_inclusive) if branch is not None else False,
    )


async def get_quote(db: AsyncSession, request: BookingQuoteRequest) -> BookingQuote:
    package = await get_bookable_package(db, request.package_id)
    return await quote_for_package(db, package, request)


async def _get_wallet(db: AsyncSession, partner_id: str) -> Optional[PartnerWallet]:
    result = await db.execute(select(PartnerWallet).where(PartnerWallet.mitra_id == partner_id))
    return result.scalar_one_or_none()


async def _get_customer(db: AsyncSession, customer_id: str) -> User:
    customer = await db.get(User, customer_id)
    if customer is None or UserRole(customer.role) != UserRole.CUSTOMER or not customer.is_active:
        raise ValidationError(
            "Customer not found",
            context={"field_name": "customer_id", "field_value": customer_id},
        )
    return customer


async def _queue_customer_whatsapp(
    db: AsyncSession,
    booking: Booking,
    entity_type: str,
    body: str
) -> None:
    """Queue a WhatsApp message to the booking's contact phone without committing."""
    owner_id = booking.customer_id or booking.mitra_id
    if owner_id is None:
        logger.info(f"No account to file WhatsApp notification under for {booking.booking_code}")
        return
    await queue_notification(
        db,
        user_id=owner_id,
        body=body,
        channel=NotificationChannel.WHATSAPP,
        recipient=booking.customer_phone,
        entity_type=entity_type,
        metadata={"booking_id": booking.id, "booking_code": booking.booking_code},
        commit=False,
    )


async def create_booking(
    db: AsyncSession,
    partner_id: str,
    payload: BookingCreate,
    today: Optional[date] = None
) -> Booking:
    """
    Create a booking for a partner.

    When a registered customer with an unclaimed referral discount is named,
    the discount comes off the customer total and is claimed in the same
    transaction as the booking.

    Raises:
        NotFoundError: Package unknown or not sold to partners
        ValidationError: Trip date in the past, no pricing, no wallet, or unknown customer
        InsufficientBalanceError: Wallet balance plus credit below the NTA total
    """
    today = today or date.today()
    if payload.trip_date < today:
        raise ValidationError(
            "Trip date must not be in the past",
            context={"field_name": "trip_date", "field_value": payload.trip_date.isoformat()},
        )

    package = await get_bookable_package(db, payload.package_id)
    quote = await quote_for_package(db, package, payload)

    customer_id = None
    pending_discount = None
    if payload.customer_id:
        customer_id = (await _get_customer(db, payload.customer_id)).id
        if not payload.is_draft:
            pending_discount = await referral.get_pending_discount(db, customer_id)

    discount_amount = Decimal("0.00")
    if pending_discount and pending_discount["has_discount"]:
        discount_amount = min(to_money(pending_discount["amount"]), quote.total_amount)

    pays_by_wallet = payload.payment_method == PaymentMethod.WALLET and not payload.is_draft
    wallet = None
    if pays_by_wallet:
        wallet = await _get_wallet(db, partner_id)
        if wallet is None:
            raise ValidationError(
                "Wallet tidak ditemukan. Silakan top-up wallet terlebih dahulu.",
                context={"partner_id": partner_id},
            )
        available = Decimal(str(wallet.balance)) + Decimal(str(wallet.credit_limit or 0))
        if available < quote.nta_total:
            raise InsufficientBalanceError(
                f"Saldo tidak mencukupi. Diperlukan {quote.nta_total}, tersedia {available}",
                context={"available": str(available), "requested": str(quote.nta_total)},
            )

    if payload.is_draft:
        status = BookingStatus.DRAFT
    elif pays_by_wallet:
        status = BookingStatus.CONFIRMED
    else:
        status = BookingStatus.PENDING_PAYMENT

    booking = Booking(
        booking_code=generate_booking_code(today),
        branch_id=package.branch_id,
        package_id=package.id,
        mitra_id=partner_id,
        customer_id=customer_id,
        source="mitra",
        trip_date=payload.trip_date,
        adult_pax=payload.adult_pax,
        child_pax=payload.child_pax,
        infant_pax=payload.infant_pax,
        price_per_adult=quote.price_per_adult,
        price_per_child=quote.price_per_child,
        subtotal=quote.subtotal,
        tax_amount=quote.tax_amount,
        total_amount=quote.total_amount - discount_amount,
        discount_amount=discount_amount,
        nta_price_per_adult=quote.nta_price_per_adult,
        nta_total=quote.nta_total,
        payment_method=payload.payment_method,
        status=status,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        customer_email=payload.customer_email,
        special_requests=payload.special_requests,
    )
    db.add(booking)

    try:
        await db.flush()
        if wallet is not None:
            balance_before = Decimal(str(wallet.balance))
            balance_after = balance_before - quote.nta_total
            db.add(WalletTransaction(
                wallet_id=wallet.id,
                booking_id=booking.id,
                transaction_type=WalletTransactionType.DEBIT,
                amount=quote.nta_total,
                balance_before=balance_before,
                balance_after=balance_after,
                description=f"Pembayaran booking {booking.booking_code}",
            ))
            wallet.balance = balance_after
        if discount_amount > 0:
            await referral.claim_referee_discount(
                db, pending_discount["referral_id"], booking.id, commit=False
            )
        await db.commit()
    except ConflictError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Booking could not be saved",
            context={"partner_id": partner_id, "package_id": payload.package_id},
            original_exception=e,
        ) from e

    logger.info(
        f"Booking created: {booking.booking_code} partner={partner_id} "
        f"status={status.value} nta_total={quote.nta_total}"
        + (f" referral_discount={discount_amount}" if discount_amount > 0 else "")
    )
    await db.refresh(booking, attribute_names=["package"])
    return booking


async def get_booking(db: AsyncSession, partner_id: str, booking_id: str) -> Booking:
    stmt = select(Booking).where(
        Booking.id == booking_id,
        Booking.mitra_id == partner_id,
        Booking.deleted_at.is_(None),
    )
    booking = (await db.execute(stmt)).unique().scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found", context={"booking_id": booking_id})
    return booking


def _apply_list_filters(stmt, status, date_from, date_to, search):
    stmt = stmt.where(Booking.deleted_at.is_(None))
    if status:
        stmt = stmt.where(Booking.status == BookingStatus(status))
    if date_from:
        stmt = stmt.where(Booking.trip_date >= date_from)
    if date_to:
        stmt = stmt.where(Booking.trip_date <= date_to)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(or_(
            func.lower(Booking.booking_code).like(pattern),
            func.lower(Booking.customer_name).like(pattern),
        ))
    return stmt


async def _paginate(db: AsyncSession, stmt, page: int, limit: int) -> Tuple[List[Booking], int]:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit)
    items = (await db.execute(stmt)).unique().scalars().all()
    return list(items), total


async def list_bookings(
    db: AsyncSession,
    partner_id: str,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20
) -> Tuple[List[Booking], int]:
    """A partner's bookings, newest first, with the total before paging."""
    stmt = select(Booking).where(Booking.mitra_id == partner_id)
    stmt = _apply_list_filters(stmt, status, date_from, date_to, search)
    return await _paginate(db, stmt, page, limit)


async def list_branch_bookings(
    db: AsyncSession,
    user: User,
    branch_id: Optional[str] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20
) -> Tuple[List[Booking], int]:
    """Admin console listing, restricted to the caller's branch."""
    stmt = apply_branch_filter(select(Booking), Booking, user, branch_id)
    stmt = _apply_list_filters(stmt, status, date_from, date_to, search)
    return await _paginate(db, stmt, page, limit)


async def cancel_booking(
    db: AsyncSession,
    partner_id: str,
    booking_id: str,
    reason: Optional[str] = None,
    today: Optional[date] = None
) -> Tuple[Booking, RefundCalculation]:
    """
    Cancel a partner booking and credit the refund to the wallet.

    Only wallet bookings that were actually charged (confirmed or paid) are
    credited; other refunds are recorded on the booking for manual handling.
    """
    today = today or date.today()
    booking = await get_booking(db, partner_id, booking_id)

    allowed, why = can_cancel(booking, today)
    if not allowed:
        raise ValidationError(why or "Booking cannot be cancelled", context={"booking_id": booking_id})

    previous_status = BookingStatus(booking.status)
    refund = calculate_refund(
        booking.trip_date,
        booking.nta_total if booking.nta_total is not None else booking.total_amount,
        today,
    )
    charged = (
        booking.payment_method == PaymentMethod.WALLET
        and previous_status in (BookingStatus.CONFIRMED, BookingStatus.PAID)
    )
    if not charged:
        refund = RefundCalculation(
            refundable=False,
            refund_percentage=0,
            refund_amount=Decimal("0.00"),
            days_before_trip=refund.days_before_trip,
            policy="Booking belum dibayar, tidak ada refund",
        )

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = datetime.utcnow()
    booking.cancelled_by = partner_id
    booking.cancellation_reason = reason or refund.policy
    booking.refund_amount = refund.refund_amount

    if refund.refundable and refund.refund_amount > 0:
        wallet = await _get_wallet(db, partner_id)
        if wallet is not None:
            balance_before = Decimal(str(wallet.balance))
            balance_after = balance_before + refund.refund_amount
            db.add(WalletTransaction(
                wallet_id=wallet.id,
                booking_id=booking.id,
                transaction_type=WalletTransactionType.CREDIT,
                amount=refund.refund_amount,
                balance_before=balance_before,
                balance_after=balance_after,
                description=f"Refund pembatalan booking {booking.booking_code}",
            ))
            wallet.balance = balance_after

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Booking was already refunded",
            context={"booking_id": booking_id},
            original_exception=e,
        ) from e

    logger.info(
        f"Booking cancelled: {booking.booking_code} refund={refund.refund_amount} "
        f"({refund.refund_percentage}%)"
    )

    booking_code = booking.booking_code
    message = f"Booking {booking_code} telah dibatalkan."
    if refund.refundable and refund.refund_amount > 0:
        message += f" Refund {refund.refund_amount} telah dikreditkan ke wallet."
    try:
        await queue_notification(
            db,
            user_id=partner_id,
            subject="Booking Dibatalkan",
            body=message,
            entity_type="booking_cancelled",
            metadata={"booking_id": booking.id, "refund_amount": str(refund.refund_amount)},
            commit=False,
        )
        await _queue_customer_whatsapp(
            db, booking, "booking_cancelled",
            f"Halo {booking.customer_name}, booking {booking_code} untuk trip "
            f"{booking.trip_date:%d-%m-%Y} telah dibatalkan.",
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to queue cancellation notification for {booking_code}: {e}")
    return booking, refund


async def get_branch_booking(db: AsyncSession, user: User, booking_id: str) -> Booking:
    """A booking an admin may act on: it must belong to their branch unless they are a super admin."""
    stmt = select(Booking).where(Booking.id == booking_id, Booking.deleted_at.is_(None))
    booking = (await db.execute(stmt)).unique().scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found", context={"booking_id": booking_id})
    ensure_branch_access(user, booking.branch_id)
    return booking


async def complete_booking(
    db: AsyncSession,
    user: User,
    booking_id: str,
    today: Optional[date] = None
) -> BookingCompletion:
    """
    Mark a booking's trip as completed and pay out what completion earns.

    A linked customer account earns AeroPoints on the amount it paid, and a
    referral whose discount this booking used is completed so the referrer
    gets the referral bonus. The contact phone gets a WhatsApp thank-you.
    A reward that was already paid is logged and skipped; the completion
    itself is committed first and never undone.

    Raises:
        NotFoundError: Unknown booking
        PermissionDeniedError: Booking belongs to another branch
        ValidationError: Status cannot be completed or the trip is still ahead
    """
    today = today or date.today()
    booking = await get_branch_booking(db, user, booking_id)

    status = BookingStatus(booking.status)
    if status not in COMPLETABLE_STATUSES:
        raise ValidationError(
            f"Booking dengan status {status.value} tidak dapat diselesaikan",
            context={"booking_id": booking_id},
        )
    if booking.trip_date > today:
        raise ValidationError(
            "Trip belum berlangsung",
            context={"booking_id": booking_id, "trip_date": booking.trip_date.isoformat()},
        )

    booking.status = BookingStatus.COMPLETED
    await db.commit()

    booking_code = booking.booking_code
    customer_id = booking.customer_id
    total_amount = booking.total_amount
    logger.info(f"Booking completed: {booking_code} by={user.id}")

    points_awarded = 0
    if customer_id:
        try:
            earned = await loyalty.award_points_for_booking(db, customer_id, booking_id, total_amount)
            points_awarded = earned.points if earned is not None else 0
        except ConflictError as e:
            logger.warning(f"Booking points for {booking_code} were not awarded: {e.message}")

    try:
        referral_completed = await referral.complete_referral(db, booking_id)
    except ConflictError as e:
        referral_completed = False
        logger.warning(f"Referral for {booking_code} was not completed: {e.message}")

    # The ledger calls above roll back on conflicts, which expires the booking
    await db.refresh(booking)
    body = f"Terima kasih {booking.customer_name}, trip Anda ({booking_code}) telah selesai."
    if points_awarded:
        body += f" Anda mendapatkan {points_awarded} AeroPoints."
    try:
        await _queue_customer_whatsapp(db, booking, "booking_completed", body)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to queue completion notification for {booking_code}: {e}")
        await db.refresh(booking)

    return BookingCompletion(
        booking=booking,
        points_awarded=points_awarded,
        referral_completed=referral_completed,
    )


async def award_review_bonus(db: AsyncSession, user: User, booking_id: str):
    """
    Credit the review bonus for a completed booking's customer.

    Raises:
        ValidationError: Booking not completed or has no customer account
        ConflictError: The bonus was already awarded for this booking
    """
    booking = await get_branch_booking(db, user, booking_id)
    if BookingStatus(booking.status) != BookingStatus.COMPLETED:
        raise ValidationError(
            "Bonus review hanya untuk trip yang sudah selesai",
            context={"booking_id": booking_id},
        )
    if not booking.customer_id:
        raise ValidationError(
            "Booking tidak terhubung ke akun customer",
            context={"booking_id": booking_id},
        )
    return await loyalty.award_points_for_review(db, booking.customer_id, booking.id)
