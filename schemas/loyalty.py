"""
Customer points and referral schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from models.base import LoyaltyTransactionType, ReferralStatus


class PointsBalanceResponse(BaseModel):
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    value_in_rupiah: int

    class Config:
        from_attributes = True


class PointsTransactionResponse(BaseModel):
    id: int
    transaction_type: LoyaltyTransactionType
    points: int
    balance_before: int
    balance_after: int
    booking_id: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class PointsHistoryResponse(BaseModel):
    transactions: List[PointsTransactionResponse]
    limit: int
    offset: int


class PointsEstimateResponse(BaseModel):
    booking_value: Decimal
    points: int
    value: int


class RedeemPointsRequest(BaseModel):
    points: int = Field(..., gt=0)
    booking_id: Optional[str] = None


class RedeemPointsResponse(BaseModel):
    points: int
    discount_amount: int
    balance_after: int
    transaction_id: int

    class Config:
        from_attributes = True


class ReferralItem(BaseModel):
    id: int
    referee_id: str
    status: ReferralStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    points_earned: int

    class Config:
        use_enum_values = True


class ReferralShare(BaseModel):
    text: str
    whatsapp_url: str
    twitter_url: str


class ReferralStatsResponse(BaseModel):
    code: str
    total_referrals: int
    successful_referrals: int
    pending_referrals: int
    total_points_earned: int
    referrals: List[ReferralItem]
    share: ReferralShare
    pending_discount: Decimal = Decimal("0")


class ReferralValidateResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class ApplyReferralRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=30)


class ApplyReferralResponse(BaseModel):
    success: bool
    discount: Decimal
    referral_code: str
