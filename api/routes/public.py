"""
Unauthenticated endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db
from schemas.settings import PublicSettingsResponse
from services.settings import get_public_settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Public"])


@router.get("/settings/public", response_model=PublicSettingsResponse)
async def public_settings(
    request: Request,
    branch_id: Optional[str] = Query(None, description="Branch overrides to apply"),
    db: AsyncSession = Depends(get_db)
):
    """Settings flagged public. Sensitive settings are never included."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] GET /api/settings/public branch={branch_id}")

    values = await get_public_settings(db, branch_id)
    return PublicSettingsResponse(settings=values)
