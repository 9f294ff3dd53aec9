"""
Partner (mitra) portal: quotes and bookings
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, require_roles
from models.base import BookingStatus, UserRole
from models.organization import User
from schemas.api import PaginationMetadata
from schemas.bookings import (
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreate,
    BookingListResponse,
    BookingQuoteRequest,
    BookingQuoteResponse,
    BookingResponse,
    RefundInfo,
)
from services import bookings as booking_service
from typing import Optional
from datetime import date
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/partner", tags=["Partner"])

mitra_only = require_roles(UserRole.MITRA)


@router.post("/bookings/quote", response_model=BookingQuoteResponse)
async def quote_booking(
    payload: BookingQuoteRequest,
    request: Request,
    user: User = Depends(mitra_only),
    db: AsyncSession = Depends(get_db)
):
    """Price a booking without saving it."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/partner/bookings/quote package={payload.package_id}")

    quote = await booking_service.get_quote(db, payload)
    return BookingQuoteResponse.model_validate(quote)


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    request: Request,
    status: Optional[BookingStatus] = Query(None, description="Filter by status"),
    date_from: Optional[date] = Query(None, alias="from", description="Trip date from"),
    date_to: Optional[date] = Query(None, alias="to", description="Trip date to"),
    search: Optional[str] = Query(None, description="Booking code or customer name"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    user: User = Depends(mitra_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"[{request_id}] GET /api/partner/bookings - page={page}, limit={limit}, "
        f"filters: status={status}, search={search}"
    )

    partner_id = booking_service.resolve_partner_id(user)
    items, total = await booking_service.list_bookings(
        db, partner_id,
        status=status, date_from=date_from, date_to=date_to, search=search,
        page=page, limit=limit,
    )
    return BookingListResponse(
        bookings=[BookingResponse.from_orm_booking(b) for b in items],
        pagination=PaginationMetadata.build(page, limit, total),
    )


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    payload: BookingCreate,
    request: Request,
    user: User = Depends(mitra_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"[{request_id}] POST /api/partner/bookings package={payload.package_id} "
        f"pax={payload.adult_pax}/{payload.child_pax}/{payload.infant_pax}"
    )

    partner_id = booking_service.resolve_partner_id(user)
    booking = await booking_service.create_booking(db, partner_id, payload)
    return BookingResponse.from_orm_booking(booking)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user: User = Depends(mitra_only),
    db: AsyncSession = Depends(get_db)
):
    partner_id = booking_service.resolve_partner_id(user)
    booking = await booking_service.get_booking(db, partner_id, booking_id)
    return BookingResponse.from_orm_booking(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: str,
    request: Request,
    payload: Optional[BookingCancelRequest] = None,
    user: User = Depends(mitra_only),
    db: AsyncSession = Depends(get_db)
):
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] POST /api/partner/bookings/{booking_id}/cancel")

    partner_id = booking_service.resolve_partner_id(user)
    booking, refund = await booking_service.cancel_booking(
        db, partner_id, booking_id, reason=payload.reason if payload else None
    )
    return BookingCancelResponse(
        booking=BookingResponse.from_orm_booking(booking),
        refund=RefundInfo(
            refundable=refund.refundable,
            refund_percentage=refund.refund_percentage,
            refund_amount=refund.refund_amount,
            days_before_trip=refund.days_before_trip,
            policy=refund.policy,
        ),
    )
