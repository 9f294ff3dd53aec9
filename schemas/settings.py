"""
Settings schemas for the admin console and the public endpoint
"""

from pydantic import BaseModel, Field
from typing import Optional, Any, List, Dict, Literal
from datetime import datetime


class SettingResponse(BaseModel):
    key: str
    value: Any = None
    value_type: str
    branch_id: Optional[str] = None
    description: Optional[str] = None
    is_public: bool
    is_sensitive: bool
    updated_at: Optional[datetime] = None


class SettingsListResponse(BaseModel):
    branch_id: Optional[str] = None
    settings: List[SettingResponse]


class SettingUpdate(BaseModel):
    key: str = Field(..., min_length=1, max_length=200)
    value: Any
    value_type: Literal["string", "number", "boolean", "json"] = "string"
    branch_id: Optional[str] = Field(None, description="Omit for a global setting (super admin only)")
    description: Optional[str] = None
    is_public: Optional[bool] = None
    is_sensitive: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "key": "loyalty.points_per_100k",
                "value": 10,
                "value_type": "number"
            }
        }


class PublicSettingsResponse(BaseModel):
    settings: Dict[str, Any]
