"""
Integration tests for partner bookings, wallet payments and refunds
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select
from core.exceptions import InsufficientBalanceError, NotFoundError, PermissionDeniedError, ValidationError
from models import NotificationLog, PartnerWallet, SeasonCalendar, WalletTransaction
from models.base import BookingStatus, NotificationChannel, PaymentMethod, UserRole, WalletTransactionType
from schemas.bookings import BookingCreate, BookingQuoteRequest
from services import bookings

TODAY = date(2026, 10, 18)
TRIP_DATE = date(2026, 11, 25)  # Wednesday, 38 days out


def booking_payload(package, **overrides) -> BookingCreate:
    data = {
        "package_id": package.id,
        "trip_date": TRIP_DATE,
        "adult_pax": 2,
        "customer_name": "Budi Santoso",
        "customer_phone": "081234567890",
    }
    data.update(overrides)
    return BookingCreate(**data)


async def wallet_balance(db_session, mitra_id) -> Decimal:
    row = (await db_session.execute(
        select(PartnerWallet).where(PartnerWallet.mitra_id == mitra_id)
    )).scalar_one()
    await db_session.refresh(row)
    return Decimal(str(row.balance))


def test_only_mitra_may_book():
    class Customer:
        id = "u-1"
        role = UserRole.CUSTOMER

    with pytest.raises(PermissionDeniedError):
        bookings.resolve_partner_id(Customer())


def test_refund_schedule():
    amount = Decimal("1000000")
    assert bookings.calculate_refund(date(2026, 11, 17), amount, TODAY).refund_percentage == 100
    assert bookings.calculate_refund(date(2026, 11, 16), amount, TODAY).refund_percentage == 50
    assert bookings.calculate_refund(date(2026, 11, 1), amount, TODAY).refund_amount == Decimal("500000.00")
    assert bookings.calculate_refund(date(2026, 10, 25), amount, TODAY).refund_percentage == 25

    late = bookings.calculate_refund(date(2026, 10, 24), amount, TODAY)
    assert late.refundable is False
    assert late.refund_amount == Decimal("0.00")


def test_booking_code_format():
    code = bookings.generate_booking_code(TODAY)
    assert code.startswith("BK-20261018-")
    assert len(code) == len("BK-20261018-") + 6


@pytest.mark.asyncio
async def test_quote_uses_branch_tax_and_season(db_session, package, branch):
    db_session.add(SeasonCalendar(
        branch_id=branch.id, season_type="high_season",
        start_date=date(2026, 11, 20), end_date=date(2026, 11, 30),
        markup_type="percent", markup_value=Decimal("10"),
    ))
    await db_session.commit()

    request = BookingQuoteRequest(package_id=package.id, trip_date=TRIP_DATE, adult_pax=2)
    quote = await bookings.get_quote(db_session, request)

    assert quote.is_high_season is True
    assert quote.price_per_adult == Decimal("550000.00")
    assert quote.subtotal == Decimal("1100000.00")
    assert quote.tax_amount == Decimal("121000.00")


@pytest.mark.asyncio
async def test_wallet_booking_is_confirmed_and_debited(db_session, mitra, package, wallet):
    mitra_id = mitra.id
    booking = await bookings.create_booking(db_session, mitra_id, booking_payload(package), today=TODAY)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.total_amount == Decimal("1110000.00")
    assert booking.nta_total == Decimal("800000.00")
    assert booking.package.name == "Pahawang Island Hopping"
    assert await wallet_balance(db_session, mitra_id) == Decimal("1200000")

    debit = (await db_session.execute(select(WalletTransaction))).scalar_one()
    assert debit.transaction_type == WalletTransactionType.DEBIT
    assert debit.booking_id == booking.id


@pytest.mark.asyncio
async def test_insufficient_wallet_balance(db_session, mitra, package, wallet):
    with pytest.raises(InsufficientBalanceError):
        await bookings.create_booking(db_session, mitra.id, booking_payload(package, adult_pax=10), today=TODAY)


@pytest.mark.asyncio
async def test_credit_limit_counts_as_available(db_session, mitra, package, wallet):
    wallet.credit_limit = Decimal("2000000")
    await db_session.commit()

    booking = await bookings.create_booking(db_session, mitra.id, booking_payload(package, adult_pax=10), today=TODAY)
    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_wallet_required(db_session, mitra, package):
    with pytest.raises(ValidationError, match="Wallet"):
        await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)


@pytest.mark.asyncio
async def test_invoice_and_draft_do_not_touch_wallet(db_session, mitra, package, wallet):
    mitra_id = mitra.id
    invoice = await bookings.create_booking(
        db_session, mitra_id, booking_payload(package, payment_method=PaymentMethod.INVOICE), today=TODAY
    )
    draft = await bookings.create_booking(
        db_session, mitra_id, booking_payload(package, status="draft"), today=TODAY
    )

    assert invoice.status == BookingStatus.PENDING_PAYMENT
    assert draft.status == BookingStatus.DRAFT
    assert await wallet_balance(db_session, mitra_id) == Decimal("2000000")


@pytest.mark.asyncio
async def test_past_trip_date_rejected(db_session, mitra, package, wallet):
    with pytest.raises(ValidationError):
        await bookings.create_booking(
            db_session, mitra.id, booking_payload(package, trip_date=date(2026, 10, 17)), today=TODAY
        )


@pytest.mark.asyncio
async def test_hidden_package_not_bookable(db_session, mitra, package, wallet):
    package.show_to_mitra = False
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)


@pytest.mark.asyncio
async def test_cancel_refunds_wallet(db_session, mitra, package, wallet):
    mitra_id = mitra.id
    booking = await bookings.create_booking(db_session, mitra_id, booking_payload(package), today=TODAY)

    # 20 days before the trip: 50% of the NTA total
    cancelled, refund = await bookings.cancel_booking(
        db_session, mitra_id, booking.id, reason="Customer sick", today=date(2026, 11, 5)
    )

    assert cancelled.status == BookingStatus.CANCELLED
    assert refund.refund_percentage == 50
    assert refund.refund_amount == Decimal("400000.00")
    assert cancelled.cancellation_reason == "Customer sick"
    assert await wallet_balance(db_session, mitra_id) == Decimal("1600000")

    partner_log = (await db_session.execute(
        select(NotificationLog).where(NotificationLog.channel == NotificationChannel.PUSH.value)
    )).scalar_one()
    assert partner_log.subject == "Booking Dibatalkan"
    assert partner_log.user_id == mitra_id

    whatsapp = (await db_session.execute(
        select(NotificationLog).where(NotificationLog.channel == NotificationChannel.WHATSAPP.value)
    )).scalar_one()
    assert whatsapp.recipient == "081234567890"
    assert whatsapp.entity_type == "booking_cancelled"

    with pytest.raises(ValidationError):
        await bookings.cancel_booking(db_session, mitra_id, booking.id, today=date(2026, 11, 5))


@pytest.mark.asyncio
async def test_cancel_unpaid_booking_has_no_refund(db_session, mitra, package, wallet):
    mitra_id = mitra.id
    booking = await bookings.create_booking(
        db_session, mitra_id, booking_payload(package, payment_method=PaymentMethod.INVOICE), today=TODAY
    )

    _, refund = await bookings.cancel_booking(db_session, mitra_id, booking.id, today=TODAY)

    assert refund.refundable is False
    assert refund.refund_amount == Decimal("0.00")
    assert await wallet_balance(db_session, mitra_id) == Decimal("2000000")


@pytest.mark.asyncio
async def test_other_partner_cannot_see_booking(db_session, mitra, package, wallet, make_user, branch):
    booking = await bookings.create_booking(db_session, mitra.id, booking_payload(package), today=TODAY)
    other = await make_user(UserRole.MITRA, branch)

    with pytest.raises(NotFoundError):
        await bookings.get_booking(db_session, other.id, booking.id)


@pytest.mark.asyncio
async def test_listing_filters_and_scope(db_session, mitra, package, wallet, branch_admin, other_branch, make_user):
    mitra_id = mitra.id
    await bookings.create_booking(db_session, mitra_id, booking_payload(package), today=TODAY)
    await bookings.create_booking(
        db_session, mitra_id,
        booking_payload(package, customer_name="Siti Aminah", payment_method=PaymentMethod.INVOICE),
        today=TODAY,
    )

    items, total = await bookings.list_bookings(db_session, mitra_id)
    assert total == 2

    items, total = await bookings.list_bookings(db_session, mitra_id, search="siti")
    assert total == 1
    assert items[0].customer_name == "Siti Aminah"

    items, total = await bookings.list_bookings(db_session, mitra_id, status="confirmed")
    assert [b.customer_name for b in items] == ["Budi Santoso"]

    items, total = await bookings.list_bookings(db_session, mitra_id, page=2, limit=1)
    assert total == 2
    assert len(items) == 1

    _, total = await bookings.list_branch_bookings(db_session, branch_admin)
    assert total == 2

    outsider = await make_user(UserRole.BRANCH_ADMIN, other_branch)
    _, total = await bookings.list_branch_bookings(db_session, outsider)
    assert total == 0
