"""
Partner booking request/response schemas
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from models.base import BookingStatus, PaymentMethod
from schemas.api import PaginationMetadata


class BookingQuoteRequest(BaseModel):
    package_id: str
    trip_date: date
    adult_pax: int = Field(..., ge=1, description="Adults (at least one)")
    child_pax: int = Field(0, ge=0, description="Children, charged 50%")
    infant_pax: int = Field(0, ge=0, description="Infants, free")


class BookingQuoteResponse(BaseModel):
    price_per_adult: Decimal
    price_per_child: Decimal
    nta_price_per_adult: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    nta_total: Decimal
    tax_rate: Decimal
    tax_inclusive: bool
    is_high_season: bool
    is_weekend: bool

    class Config:
        from_attributes = True


class BookingCreate(BookingQuoteRequest):
    """Booking placed by a mitra on behalf of a customer"""
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=5, max_length=30)
    customer_email: Optional[str] = Field(None, max_length=255)
    special_requests: Optional[str] = None
    customer_id: Optional[str] = Field(None, description="Registered customer account that earns AeroPoints")
    payment_method: PaymentMethod = PaymentMethod.WALLET
    status: Optional[str] = Field(None, description="Pass 'draft' to save without payment")

    @validator("customer_name", "customer_phone")
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @validator("status")
    def only_draft(cls, v):
        if v is not None and v != BookingStatus.DRAFT.value:
            raise ValueError("only 'draft' may be requested")
        return v

    @property
    def is_draft(self) -> bool:
        return self.status == BookingStatus.DRAFT.value

    class Config:
        json_schema_extra = {
            "example": {
                "package_id": "6a0b1f3e-3c7d-4d8e-9b1a-2f4c5d6e7f80",
                "trip_date": "2025-03-15",
                "adult_pax": 2,
                "child_pax": 1,
                "infant_pax": 0,
                "customer_name": "Budi Santoso",
                "customer_phone": "081234567890",
                "payment_method": "wallet"
            }
        }


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    id: str
    booking_code: str
    branch_id: str
    package_id: str
    package_name: Optional[str] = None
    mitra_id: Optional[str] = None
    customer_id: Optional[str] = None
    trip_date: date
    adult_pax: int
    child_pax: int
    infant_pax: int
    price_per_adult: Decimal
    price_per_child: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    discount_amount: Optional[Decimal] = None
    nta_total: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    status: BookingStatus
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    created_at: datetime

    @classmethod
    def from_orm_booking(cls, booking) -> "BookingResponse":
        response = cls.model_validate(booking)
        if booking.package is not None:
            response.package_name = booking.package.name
        return response

    class Config:
        from_attributes = True
        use_enum_values = True


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: PaginationMetadata


class RefundInfo(BaseModel):
    refundable: bool
    refund_percentage: int
    refund_amount: Decimal
    days_before_trip: int
    policy: str


class BookingCancelResponse(BaseModel):
    booking: BookingResponse
    refund: RefundInfo


class BookingCompletionResponse(BaseModel):
    booking: BookingResponse
    points_awarded: int
    referral_completed: bool
