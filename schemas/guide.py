"""
Guide app schemas: attendance, GPS settings, rewards and license
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from models.base import RewardSourceType, RewardTransactionType


class CheckInRequest(BaseModel):
    trip_id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="GPS accuracy in metres")


class MeetingPointInfo(BaseModel):
    id: Optional[str] = None
    name: str
    latitude: float
    longitude: float
    radius_meters: float

    class Config:
        from_attributes = True


class AttendanceResponse(BaseModel):
    id: int
    trip_id: str
    guide_id: str
    meeting_point_id: Optional[str] = None
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    distance_meters: int
    checked_in_at: datetime

    class Config:
        from_attributes = True


class CheckInResponse(BaseModel):
    success: bool
    message: str
    distance_meters: int
    meeting_point: Optional[MeetingPointInfo] = None
    attendance: AttendanceResponse


class AttendanceStatusResponse(BaseModel):
    checked_in: bool
    attendance: Optional[AttendanceResponse] = None


class GeofencingSettingsResponse(BaseModel):
    gps_timeout_ms: int
    gps_max_age_ms: int
    gps_watch_max_age_ms: int
    default_radius_meters: int

    class Config:
        from_attributes = True


class RewardBalanceResponse(BaseModel):
    balance: int
    lifetime_earned: int
    lifetime_redeemed: int
    expired_points: int

    class Config:
        from_attributes = True


class ExpiringPointsItem(BaseModel):
    points: int
    expires_at: date


class ExpiringPointsResponse(BaseModel):
    days: int
    total: int
    items: List[ExpiringPointsItem]


class RewardTransactionResponse(BaseModel):
    id: int
    guide_id: str
    transaction_type: RewardTransactionType
    source_type: Optional[RewardSourceType] = None
    source_id: Optional[str] = None
    points: int
    balance_after: int
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class RedeemRewardRequest(BaseModel):
    points: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)


class AwardRewardRequest(BaseModel):
    """Manual award from the admin console"""
    guide_id: str
    points: int = Field(..., gt=0)
    source_type: RewardSourceType = RewardSourceType.MANUAL
    source_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=500)
    metadata: Optional[Dict[str, Any]] = None


class LicenseStatusResponse(BaseModel):
    has_license: bool
    license_number: Optional[str] = None
    status: Optional[str] = None
    issued_at: Optional[date] = None
    expiry_date: Optional[date] = None
    days_until_expiry: Optional[int] = None


class ExpiringLicenseItem(BaseModel):
    guide_id: str
    license_number: str
    expiry_date: date
    days_until_expiry: int
    status: str
