"""
Pydantic schemas for request/response validation.

Schemas:
    api: Health check, pagination and error envelopes
    bookings: Quote, booking create/cancel and listing payloads
    loyalty: Customer points, redemptions and referral payloads
    guide: Check-in, attendance, rewards and license payloads
    settings: Admin and public settings payloads

Usage:
    from schemas.bookings import BookingCreate, BookingResponse
    from schemas.guide import CheckInRequest

Validation:
    Field constraints (pax counts, coordinates, phone numbers, setting
    value types) are enforced here so services receive well-formed input;
    business rules such as wallet balance or geofence radius stay in the
    services package.
"""

from schemas.api import HealthCheckResponse, ErrorResponse
from schemas.bookings import BookingCreate, BookingResponse, BookingQuoteRequest
from schemas.guide import CheckInRequest
from schemas.loyalty import PointsBalanceResponse
from schemas.settings import SettingUpdate

__all__ = [
    "HealthCheckResponse",
    "ErrorResponse",
    "BookingCreate",
    "BookingResponse",
    "BookingQuoteRequest",
    "CheckInRequest",
    "PointsBalanceResponse",
    "SettingUpdate",
]
