"""
Admin console: settings, bookings, rewards and licenses.

Every listing is narrowed to the caller's branch unless they are a super admin.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, require_roles
from core.exceptions import NotFoundError, PermissionDeniedError
from core.security import ADMIN_ROLES, SETTINGS_ADMIN_ROLES
from models.base import BookingStatus, UserRole
from models.organization import User
from schemas.api import PaginationMetadata
from schemas.bookings import BookingCompletionResponse, BookingListResponse, BookingResponse
from schemas.guide import AwardRewardRequest, ExpiringLicenseItem, RewardTransactionResponse
from schemas.loyalty import PointsTransactionResponse
from schemas.settings import SettingResponse, SettingsListResponse, SettingUpdate
from services import bookings as booking_service
from services import licenses as license_service
from services import rewards as reward_service
from services import settings as settings_service
from services.branch_scope import ensure_branch_access, resolve_branch_id
from typing import List, Optional
from datetime import date
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])

SENSITIVE_MASK = "********"


def _setting_response(row) -> SettingResponse:
    value = settings_service.parse_setting_value(row.value, row.value_type)
    return SettingResponse(
        key=row.key,
        value=SENSITIVE_MASK if row.is_sensitive else value,
        value_type=row.value_type,
        branch_id=row.branch_id,
        description=row.description,
        is_public=row.is_public,
        is_sensitive=row.is_sensitive,
        updated_at=row.updated_at,
    )


def _settings_branch(user: User, requested: Optional[str]) -> Optional[str]:
    branch_id = resolve_branch_id(user, requested)
    if not user.is_super_admin and branch_id is None:
        raise PermissionDeniedError(
            "Only super admins may manage global settings",
            context={"user_id": user.id, "role": UserRole(user.role).value},
        )
    return branch_id


@router.get("/settings", response_model=SettingsListResponse)
async def list_settings(
    request: Request,
    branch_id: Optional[str] = Query(None, description="Branch to show overrides for"),
    user: User = Depends(require_roles(SETTINGS_ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Global settings plus the branch's overrides. Sensitive values are masked."""
    request_id = getattr(request.state, "request_id", None)
    scope = _settings_branch(user, branch_id)
    logger.info(f"[{request_id}] GET /api/admin/settings branch={scope}")

    rows = await settings_service.list_settings(db, scope)
    return SettingsListResponse(branch_id=scope, settings=[_setting_response(r) for r in rows])


@router.put("/settings", response_model=SettingResponse)
async def update_setting(
    payload: SettingUpdate,
    request: Request,
    user: User = Depends(require_roles(SETTINGS_ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    scope = _settings_branch(user, payload.branch_id)
    logger.info(f"[{request_id}] PUT /api/admin/settings key={payload.key} branch={scope} by={user.id}")

    row = await settings_service.upsert_setting(
        db,
        key=payload.key,
        value=payload.value,
        value_type=payload.value_type,
        branch_id=scope,
        is_public=payload.is_public,
        is_sensitive=payload.is_sensitive,
        description=payload.description,
    )
    return _setting_response(row)


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    request: Request,
    branch_id: Optional[str] = Query(None, description="Super admin only: narrow to a branch"),
    status: Optional[BookingStatus] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] GET /api/admin/bookings - page={page}, status={status}, search={search}")

    items, total = await booking_service.list_branch_bookings(
        db, user,
        branch_id=branch_id, status=status, date_from=date_from, date_to=date_to,
        search=search, page=page, limit=limit,
    )
    return BookingListResponse(
        bookings=[BookingResponse.from_orm_booking(b) for b in items],
        pagination=PaginationMetadata.build(page, limit, total),
    )


@router.post("/bookings/{booking_id}/complete", response_model=BookingCompletionResponse)
async def complete_booking(
    booking_id: str,
    request: Request,
    user: User = Depends(require_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Close a trip's booking: customer AeroPoints, referral bonus and a WhatsApp thank-you."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/admin/bookings/{booking_id}/complete by={user.id}")

    completion = await booking_service.complete_booking(db, user, booking_id)
    return BookingCompletionResponse(
        booking=BookingResponse.from_orm_booking(completion.booking),
        points_awarded=completion.points_awarded,
        referral_completed=completion.referral_completed,
    )


@router.post("/bookings/{booking_id}/review-bonus", response_model=PointsTransactionResponse, status_code=201)
async def award_review_bonus(
    booking_id: str,
    request: Request,
    user: User = Depends(require_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """Credit the review bonus once an admin has approved the customer's review."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/admin/bookings/{booking_id}/review-bonus by={user.id}")

    transaction = await booking_service.award_review_bonus(db, user, booking_id)
    return PointsTransactionResponse.model_validate(transaction)


@router.post("/rewards/award", response_model=RewardTransactionResponse, status_code=201)
async def award_reward(
    payload: AwardRewardRequest,
    request: Request,
    user: User = Depends(require_roles(UserRole.SUPER_ADMIN, UserRole.OPS_ADMIN)),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/admin/rewards/award guide={payload.guide_id} points={payload.points}")

    guide = await db.get(User, payload.guide_id)
    if guide is None or UserRole(guide.role) != UserRole.GUIDE:
        raise NotFoundError("Guide not found", context={"guide_id": payload.guide_id})
    ensure_branch_access(user, guide.branch_id)

    metadata = dict(payload.metadata or {})
    metadata["awarded_by"] = user.id
    transaction = await reward_service.award_points(
        db,
        guide.id,
        payload.points,
        payload.source_type,
        source_id=payload.source_id,
        description=payload.description,
        metadata=metadata,
    )
    return RewardTransactionResponse.model_validate(transaction)


@router.get("/licenses/expiring", response_model=List[ExpiringLicenseItem])
async def expiring_licenses(
    within_days: int = Query(30, ge=1, le=365),
    user: User = Depends(require_roles(ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    today = date.today()
    rows = await license_service.list_expiring_licenses(db, user, within_days, today)
    return [
        ExpiringLicenseItem(
            guide_id=row.guide_id,
            license_number=row.license_number,
            expiry_date=row.expiry_date,
            days_until_expiry=license_service.days_until_expiry(row.expiry_date, today),
            status=license_service.license_status(row, today),
        )
        for row in rows
    ]
