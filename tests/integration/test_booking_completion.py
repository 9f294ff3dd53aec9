"""
Integration tests for completing bookings: customer points, referral payout,
review bonus and WhatsApp notifications
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select
from core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from models import LoyaltyTransaction, NotificationLog, Referral
from models.base import (
    BookingStatus,
    LoyaltyTransactionType,
    NotificationChannel,
    PaymentMethod,
    ReferralStatus,
    UserRole,
)
from schemas.bookings import BookingCreate
from services import bookings, loyalty, referral

TODAY = date(2026, 10, 18)
TRIP_DATE = date(2026, 11, 25)


def booking_payload(package, **overrides) -> BookingCreate:
    data = {
        "package_id": package.id,
        "trip_date": TRIP_DATE,
        "adult_pax": 2,
        "customer_name": "Budi Santoso",
        "customer_phone": "081298765432",
    }
    data.update(overrides)
    return BookingCreate(**data)


async def whatsapp_logs(db_session, entity_type):
    stmt = select(NotificationLog).where(
        NotificationLog.channel == NotificationChannel.WHATSAPP.value,
        NotificationLog.entity_type == entity_type,
    )
    return (await db_session.execute(stmt)).scalars().all()


@pytest.mark.asyncio
async def test_referred_customer_gets_discount_and_completion_pays_out(
    db_session, mitra, package, wallet, customer, branch_admin, make_user
):
    referrer_id = customer.id
    referee = await make_user(UserRole.CUSTOMER)
    referee_id = referee.id
    code = await referral.get_or_generate_code(db_session, referrer_id)
    applied = await referral.apply_code(db_session, referee_id, code.code)
    referral_id = applied.id

    booking = await bookings.create_booking(
        db_session, mitra.id, booking_payload(package, customer_id=referee_id), today=TODAY
    )
    booking_id = booking.id

    assert booking.customer_id == referee_id
    assert booking.discount_amount == Decimal("50000.00")
    assert booking.total_amount == Decimal("1060000.00")
    assert (await referral.get_pending_discount(db_session, referee_id))["has_discount"] is False

    completion = await bookings.complete_booking(db_session, branch_admin, booking_id, today=TRIP_DATE)

    assert completion.booking.status == BookingStatus.COMPLETED
    assert completion.points_awarded == 100
    assert completion.referral_completed is True

    assert (await loyalty.get_balance(db_session, referee_id)).balance == 100
    assert (await loyalty.get_balance(db_session, referrer_id)).balance == 10000

    completed = await db_session.get(Referral, referral_id, populate_existing=True)
    assert completed.status == ReferralStatus.COMPLETED
    assert completed.booking_id == booking_id

    [thanks] = await whatsapp_logs(db_session, "booking_completed")
    assert thanks.recipient == "081298765432"
    assert thanks.user_id == referee_id
    assert "100 AeroPoints" in thanks.body


@pytest.mark.asyncio
async def test_draft_does_not_claim_referral_discount(db_session, mitra, package, wallet, customer, make_user):
    referee = await make_user(UserRole.CUSTOMER)
    referee_id = referee.id
    code = await referral.get_or_generate_code(db_session, customer.id)
    await referral.apply_code(db_session, referee_id, code.code)

    draft = await bookings.create_booking(
        db_session, mitra.id, booking_payload(package, customer_id=referee_id, status="draft"), today=TODAY
    )

    assert draft.discount_amount == Decimal("0.00")
    assert draft.total_amount == Decimal("1110000.00")
    assert (await referral.get_pending_discount(db_session, referee_id))["has_discount"] is True


@pytest.mark.asyncio
async def test_unknown_customer_rejected(db_session, mitra, package, wallet, guide):
    with pytest.raises(ValidationError):
        await bookings.create_booking(
            db_session, mitra.id, booking_payload(package, customer_id=guide.id), today=TODAY
        )


@pytest.mark.asyncio
async def test_complete_without_customer_account(db_session, mitra, package, wallet, branch_admin):
    mitra_id = mitra.id
    booking = await bookings.create_booking(db_session, mitra_id, booking_payload(package), today=TODAY)

    completion = await bookings.complete_booking(db_session, branch_admin, booking.id, today=TRIP_DATE)

    assert completion.points_awarded == 0
    assert completion.referral_completed is False
    points = (await db_session.execute(select(LoyaltyTransaction))).scalars().all()
    assert points == []

    [thanks] = await whatsapp_logs(db_session, "booking_completed")
    assert thanks.user_id == mitra_id
    assert "AeroPoints" not in thanks.body


@pytest.mark.asyncio
async def test_complete_rejects_future_trip_and_wrong_status(db_session, mitra, package, wallet, branch_admin):
    confirmed = await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)
    draft = await bookings.create_booking(
        db_session, mitra.id, booking_payload(package, status="draft"), today=TODAY
    )

    with pytest.raises(ValidationError):
        await bookings.complete_booking(db_session, branch_admin, confirmed.id, today=TODAY)
    with pytest.raises(ValidationError):
        await bookings.complete_booking(db_session, branch_admin, draft.id, today=TRIP_DATE)

    await bookings.complete_booking(db_session, branch_admin, confirmed.id, today=TRIP_DATE)
    with pytest.raises(ValidationError):
        await bookings.complete_booking(db_session, branch_admin, confirmed.id, today=TRIP_DATE)


@pytest.mark.asyncio
async def test_complete_is_branch_scoped(db_session, mitra, package, wallet, other_branch, make_user):
    booking = await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)
    outsider = await make_user(UserRole.BRANCH_ADMIN, other_branch)

    with pytest.raises(PermissionDeniedError):
        await bookings.complete_booking(db_session, outsider, booking.id, today=TRIP_DATE)


@pytest.mark.asyncio
async def test_points_already_awarded_do_not_block_completion(
    db_session, mitra, package, wallet, customer, branch_admin
):
    customer_id = customer.id
    booking = await bookings.create_booking(
        db_session, mitra.id,
        booking_payload(package, customer_id=customer_id, payment_method=PaymentMethod.INVOICE),
        today=TODAY,
    )
    booking_id = booking.id
    booking.status = BookingStatus.PAID
    await db_session.commit()
    await loyalty.award_points(
        db_session, customer_id, 25, LoyaltyTransactionType.EARN_BOOKING, booking_id=booking_id,
    )

    completion = await bookings.complete_booking(db_session, branch_admin, booking_id, today=TRIP_DATE)

    assert completion.booking.status == BookingStatus.COMPLETED
    assert completion.booking.package.name == "Pahawang Island Hopping"
    assert completion.points_awarded == 0
    assert (await loyalty.get_balance(db_session, customer_id)).balance == 25


@pytest.mark.asyncio
async def test_review_bonus_once_per_completed_booking(
    db_session, mitra, package, wallet, customer, branch_admin
):
    customer_id = customer.id
    booking = await bookings.create_booking(
        db_session, mitra.id, booking_payload(package, customer_id=customer_id), today=TODAY
    )
    booking_id = booking.id

    with pytest.raises(ValidationError):
        await bookings.award_review_bonus(db_session, branch_admin, booking_id)

    await bookings.complete_booking(db_session, branch_admin, booking_id, today=TRIP_DATE)
    bonus = await bookings.award_review_bonus(db_session, branch_admin, booking_id)

    assert bonus.transaction_type == LoyaltyTransactionType.EARN_REVIEW
    assert bonus.points == 50
    assert (await loyalty.get_balance(db_session, customer_id)).balance == 160

    with pytest.raises(ConflictError):
        await bookings.award_review_bonus(db_session, branch_admin, booking_id)


@pytest.mark.asyncio
async def test_review_bonus_needs_customer_account(db_session, mitra, package, wallet, branch_admin):
    booking = await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)
    await bookings.complete_booking(db_session, branch_admin, booking.id, today=TRIP_DATE)

    with pytest.raises(ValidationError):
        await bookings.award_review_bonus(db_session, branch_admin, booking.id)
