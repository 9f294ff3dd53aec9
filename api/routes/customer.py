"""
Customer storefront: AeroPoints and referrals
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_current_user, require_roles
from models.base import UserRole
from models.organization import User
from schemas.loyalty import (
    ApplyReferralRequest,
    ApplyReferralResponse,
    PointsBalanceResponse,
    PointsEstimateResponse,
    PointsHistoryResponse,
    PointsTransactionResponse,
    RedeemPointsRequest,
    RedeemPointsResponse,
    ReferralShare,
    ReferralStatsResponse,
    ReferralValidateResponse,
)
from services import loyalty as loyalty_service
from services import referral as referral_service
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/customer", tags=["Customer"])

customer_only = require_roles(UserRole.CUSTOMER)


@router.get("/points", response_model=PointsBalanceResponse)
async def points_balance(
    user: User = Depends(customer_only),
    db: AsyncSession = Depends(get_db)
):
    balance = await loyalty_service.get_balance(db, user.id)
    return PointsBalanceResponse.model_validate(balance)


@router.get("/points/history", response_model=PointsHistoryResponse)
async def points_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(customer_only),
    db: AsyncSession = Depends(get_db)
):
    rows = await loyalty_service.get_history(db, user.id, limit, offset)
    return PointsHistoryResponse(
        transactions=[PointsTransactionResponse.model_validate(r) for r in rows],
        limit=limit,
        offset=offset,
    )


@router.get("/points/estimate", response_model=PointsEstimateResponse)
async def points_estimate(
    booking_value: Decimal = Query(..., ge=0, description="Booking total in rupiah"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Points a booking of this value would earn."""
    estimate = await loyalty_service.estimate_points(db, booking_value, user.branch_id)
    return PointsEstimateResponse(booking_value=booking_value, **estimate)


@router.post("/points/redeem", response_model=RedeemPointsResponse)
async def redeem_points(
    payload: RedeemPointsRequest,
    request: Request,
    user: User = Depends(customer_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/customer/points/redeem points={payload.points}")

    result = await loyalty_service.redeem_points(db, user.id, payload.points, payload.booking_id)
    return RedeemPointsResponse.model_validate(result)


@router.get("/referral", response_model=ReferralStatsResponse)
async def referral_stats(
    user: User = Depends(customer_only),
    db: AsyncSession = Depends(get_db)
):
    stats = await referral_service.get_stats(db, user.id)
    pending = await referral_service.get_pending_discount(db, user.id)
    return ReferralStatsResponse(
        **stats,
        share=ReferralShare(**referral_service.generate_share_message(stats["code"])),
        pending_discount=pending["amount"],
    )


@router.get("/referral/validate", response_model=ReferralValidateResponse)
async def validate_referral(
    code: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await referral_service.validate_code(db, code)
    return ReferralValidateResponse(valid=result["valid"], error=result.get("error"))


@router.post("/referral/apply", response_model=ApplyReferralResponse)
async def apply_referral(
    payload: ApplyReferralRequest,
    request: Request,
    user: User = Depends(customer_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/customer/referral/apply")

    referral = await referral_service.apply_code(db, user.id, payload.code)
    return ApplyReferralResponse(
        success=True,
        discount=referral.referee_discount,
        referral_code=referral.referral_code,
    )
