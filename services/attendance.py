"""
Guide attendance check-in.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, GeofenceViolationError, NotFoundError
from models.guide import GuideAttendance, MeetingPoint, Trip
from models.organization import User
from services.branch_scope import ensure_branch_access
from services.geofencing import (
    CheckInResult,
    Coordinates,
    GeofencePoint,
    default_meeting_points,
    get_geofencing_settings,
    validate_check_in,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInOutcome:
    attendance: GuideAttendance
    result: CheckInResult


async def _branch_meeting_points(db: AsyncSession, branch_id: str) -> Sequence[GeofencePoint]:
    stmt = (
        select(MeetingPoint)
        .where(MeetingPoint.branch_id == branch_id, MeetingPoint.is_active.is_(True))
        .order_by(MeetingPoint.name)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return [GeofencePoint.from_model(row) for row in rows]


async def check_in(
    db: AsyncSession,
    guide: User,
    trip_id: str,
    location: Coordinates
) -> CheckInOutcome:
    """
    Record a guide's arrival for a trip.

    The trip's own meeting point is used when set; otherwise the nearest
    active meeting point of the branch, and the built-in piers (fenced with
    ``geofencing.default_radius_meters``) when the branch has none.

    Raises:
        NotFoundError: Unknown trip
        PermissionDeniedError: Trip belongs to another branch
        GeofenceViolationError: Location is outside the allowed radius
        ConflictError: The guide already checked in for this trip
    """
    guide_id = guide.id
    trip = await db.get(Trip, trip_id, populate_existing=True)
    if trip is None:
        raise NotFoundError("Trip not found", context={"trip_id": trip_id})
    ensure_branch_access(guide, trip.branch_id)

    stored_point = trip.meeting_point if trip.meeting_point and trip.meeting_point.is_active else None
    if stored_point is not None:
        result = validate_check_in(location, target=GeofencePoint.from_model(stored_point))
        from_db = True
    else:
        branch_points = await _branch_meeting_points(db, trip.branch_id)
        from_db = bool(branch_points)
        if not from_db:
            gps = await get_geofencing_settings(db, trip.branch_id)
            branch_points = default_meeting_points(gps.default_radius_meters)
        result = validate_check_in(location, points=branch_points)

    if not result.allowed:
        logger.info(
            f"Check-in rejected: guide={guide.id}, trip={trip_id}, "
            f"distance={result.distance_meters}m"
        )
        raise GeofenceViolationError(
            result.message,
            context={
                "distance_meters": result.distance_meters,
                "radius_meters": result.meeting_point.radius_meters if result.meeting_point else None,
                "meeting_point": result.meeting_point.name if result.meeting_point else None,
            },
        )

    attendance = GuideAttendance(
        trip_id=trip.id,
        guide_id=guide.id,
        meeting_point_id=result.meeting_point.id if from_db else None,
        latitude=location.latitude,
        longitude=location.longitude,
        accuracy=location.accuracy,
        distance_meters=result.distance_meters,
    )
    db.add(attendance)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(
            "Already checked in for this trip",
            context={"trip_id": trip_id, "guide_id": guide_id},
            original_exception=e,
        ) from e

    logger.info(f"Check-in accepted: guide={guide.id}, trip={trip_id}, at {result.meeting_point.name}")
    return CheckInOutcome(attendance=attendance, result=result)


async def get_attendance(db: AsyncSession, guide: User, trip_id: str) -> Optional[GuideAttendance]:
    stmt = select(GuideAttendance).where(
        GuideAttendance.trip_id == trip_id,
        GuideAttendance.guide_id == guide.id,
    )
    return (await db.execute(stmt)).scalar_one_or_none()
