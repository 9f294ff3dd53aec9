"""
Shared API schemas: health, pagination and errors.
"""

import math
from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    scheduler_running: bool = False
    environment: str
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"
        return v or "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-01-15T10:30:00Z",
                "database_connected": True,
                "scheduler_running": True,
                "environment": "production"
            }
        }


# ============================================================================
# Pagination
# ============================================================================

class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMetadata":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    code: Optional[str] = None
    request_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Booking not found",
                "code": "NOT_FOUND",
                "request_id": "3f1c2d9e-7a9b-4a51-9d0b-0d7e2f0f6a11"
            }
        }
