"""
Guide mobile app: attendance, GPS settings, rewards and license
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, require_roles
from models.base import UserRole
from models.organization import User
from schemas.guide import (
    AttendanceResponse,
    AttendanceStatusResponse,
    CheckInRequest,
    CheckInResponse,
    ExpiringPointsResponse,
    GeofencingSettingsResponse,
    LicenseStatusResponse,
    MeetingPointInfo,
    RedeemRewardRequest,
    RewardBalanceResponse,
    RewardTransactionResponse,
)
from services import attendance as attendance_service
from services import licenses as license_service
from services import rewards as reward_service
from services.geofencing import Coordinates, get_geofencing_settings
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/guide", tags=["Guide"])

guide_only = require_roles(UserRole.GUIDE)


@router.post("/attendance/check-in", response_model=CheckInResponse)
async def check_in(
    payload: CheckInRequest,
    request: Request,
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    """Check in at the trip's meeting point. Rejected outside the geofence."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/guide/attendance/check-in trip={payload.trip_id}")

    location = Coordinates(payload.latitude, payload.longitude, payload.accuracy)
    outcome = await attendance_service.check_in(db, user, payload.trip_id, location)
    point = outcome.result.meeting_point

    return CheckInResponse(
        success=True,
        message=outcome.result.message,
        distance_meters=outcome.result.distance_meters,
        meeting_point=MeetingPointInfo.model_validate(point) if point else None,
        attendance=AttendanceResponse.model_validate(outcome.attendance),
    )


@router.get("/attendance/{trip_id}", response_model=AttendanceStatusResponse)
async def get_attendance(
    trip_id: str,
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    record = await attendance_service.get_attendance(db, user, trip_id)
    return AttendanceStatusResponse(
        checked_in=record is not None,
        attendance=AttendanceResponse.model_validate(record) if record else None,
    )


@router.get("/settings/geofencing", response_model=GeofencingSettingsResponse)
async def geofencing_settings(
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    values = await get_geofencing_settings(db, user.branch_id)
    return GeofencingSettingsResponse.model_validate(values)


@router.get("/rewards", response_model=RewardBalanceResponse)
async def reward_balance(
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    balance = await reward_service.get_balance(db, user.id)
    return RewardBalanceResponse.model_validate(balance)


@router.get("/rewards/expiring", response_model=ExpiringPointsResponse)
async def expiring_rewards(
    days: int = Query(30, ge=1, le=365, description="Look-ahead window in days"),
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    items = await reward_service.get_expiring_points(db, user.id, days)
    return ExpiringPointsResponse(
        days=days,
        total=sum(item["points"] for item in items),
        items=items,
    )


@router.post("/rewards/redeem", response_model=RewardTransactionResponse)
async def redeem_rewards(
    payload: RedeemRewardRequest,
    request: Request,
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/guide/rewards/redeem points={payload.points}")

    transaction = await reward_service.redeem_points(db, user.id, payload.points, payload.description)
    return RewardTransactionResponse.model_validate(transaction)


@router.get("/license/status", response_model=LicenseStatusResponse)
async def license_status(
    user: User = Depends(guide_only),
    db: AsyncSession = Depends(get_db)
):
    license = await license_service.get_active_license(db, user.id)
    if license is None:
        return LicenseStatusResponse(has_license=False)

    return LicenseStatusResponse(
        has_license=True,
        license_number=license.license_number,
        status=license_service.license_status(license),
        issued_at=license.issued_at,
        expiry_date=license.expiry_date,
        days_until_expiry=license_service.days_until_expiry(license.expiry_date),
    )
