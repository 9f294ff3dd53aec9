"""
Integration tests for referral codes and rewards
"""

import re
import pytest
from decimal import Decimal
from core.exceptions import ConflictError, ValidationError
from models import Referral
from models.base import ReferralStatus, UserRole
from services import loyalty, referral


@pytest.mark.asyncio
async def test_code_is_generated_once(db_session, customer):
    first = await referral.get_or_generate_code(db_session, customer.id)
    second = await referral.get_or_generate_code(db_session, customer.id)

    assert re.fullmatch(r"AERO-[A-Z0-9]{6}", first.code)
    assert first.id == second.id


@pytest.mark.asyncio
async def test_validate_ignores_case(db_session, customer):
    code = await referral.get_or_generate_code(db_session, customer.id)

    result = await referral.validate_code(db_session, code.code.lower())
    assert result == {"valid": True, "referrer_id": customer.id}


@pytest.mark.asyncio
async def test_validate_unknown_and_inactive(db_session, customer):
    assert (await referral.validate_code(db_session, "AERO-XXXXXX"))["valid"] is False

    code = await referral.get_or_generate_code(db_session, customer.id)
    code.is_active = False
    await db_session.commit()

    result = await referral.validate_code(db_session, code.code)
    assert result["valid"] is False
    assert "tidak aktif" in result["error"]


@pytest.mark.asyncio
async def test_apply_own_code_rejected(db_session, customer):
    code = await referral.get_or_generate_code(db_session, customer.id)
    with pytest.raises(ValidationError):
        await referral.apply_code(db_session, customer.id, code.code)


@pytest.mark.asyncio
async def test_apply_twice_rejected(db_session, customer, make_user):
    referee = await make_user(UserRole.CUSTOMER)
    code = await referral.get_or_generate_code(db_session, customer.id)

    row = await referral.apply_code(db_session, referee.id, code.code)
    assert row.status == ReferralStatus.PENDING
    assert row.referee_discount == Decimal("50000")

    with pytest.raises(ConflictError):
        await referral.apply_code(db_session, referee.id, code.code)


@pytest.mark.asyncio
async def test_full_referral_flow(db_session, customer, make_user):
    referee = await make_user(UserRole.CUSTOMER)
    code = await referral.get_or_generate_code(db_session, customer.id)
    applied = await referral.apply_code(db_session, referee.id, code.code)

    pending = await referral.get_pending_discount(db_session, referee.id)
    assert pending["has_discount"] is True
    assert pending["amount"] == Decimal("50000")

    await referral.claim_referee_discount(db_session, applied.id, "booking-77")
    assert (await referral.get_pending_discount(db_session, referee.id))["has_discount"] is False

    with pytest.raises(ConflictError):
        await referral.claim_referee_discount(db_session, applied.id, "booking-78")

    assert await referral.complete_referral(db_session, "booking-77") is True
    assert await referral.complete_referral(db_session, "booking-77") is False

    completed = await db_session.get(Referral, applied.id)
    assert completed.status == ReferralStatus.COMPLETED
    assert completed.completed_at is not None

    balance = await loyalty.get_balance(db_session, customer.id)
    assert balance.balance == 10000

    stats = await referral.get_stats(db_session, customer.id)
    assert stats["total_referrals"] == 1
    assert stats["successful_referrals"] == 1
    assert stats["pending_referrals"] == 0
    assert stats["total_points_earned"] == 10000


def test_share_message_links():
    share = referral.generate_share_message("AERO-ABC123")
    assert "AERO-ABC123" in share["text"]
    assert share["whatsapp_url"].startswith("https://wa.me/?text=")
    assert "AERO-ABC123" in share["twitter_url"]
