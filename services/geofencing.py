"""
Geofencing for guide check-in.

Distances use the haversine formula on a spherical Earth. A location is
inside a meeting point's fence when its distance is at most the radius.
"""

import math
import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ValidationError
from services.settings import coerce_int, get_settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371e3


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValidationError(
                "Latitude must be between -90 and 90",
                context={"field_name": "latitude", "field_value": self.latitude},
            )
        if not -180 <= self.longitude <= 180:
            raise ValidationError(
                "Longitude must be between -180 and 180",
                context={"field_name": "longitude", "field_value": self.longitude},
            )


@dataclass(frozen=True)
class GeofencePoint:
    """Plain meeting point used by the calculators (ORM rows are converted)."""
    id: Optional[str]
    name: str
    latitude: float
    longitude: float
    radius_meters: float = 50

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

    @classmethod
    def from_model(cls, row) -> "GeofencePoint":
        return cls(
            id=row.id,
            name=row.name,
            latitude=row.latitude,
            longitude=row.longitude,
            radius_meters=row.radius_meters,
        )


@dataclass(frozen=True)
class CheckInResult:
    allowed: bool
    distance_meters: int
    meeting_point: Optional[GeofencePoint]
    message: str


@dataclass(frozen=True)
class GeofencingSettings:
    gps_timeout_ms: int = 10000
    gps_max_age_ms: int = 0
    gps_watch_max_age_ms: int = 5000
    default_radius_meters: int = 50


DEFAULT_MEETING_POINTS: Tuple[GeofencePoint, ...] = (
    GeofencePoint(id="ketapang", name="Dermaga Ketapang", latitude=-5.4667, longitude=105.2833, radius_meters=50),
    GeofencePoint(id="merak", name="Dermaga Merak", latitude=-5.9333, longitude=105.9833, radius_meters=50),
)


def default_meeting_points(radius_meters: Optional[float] = None) -> Tuple[GeofencePoint, ...]:
    """Built-in piers, optionally with a configured radius instead of 50 m."""
    if not radius_meters:
        return DEFAULT_MEETING_POINTS
    return tuple(replace(point, radius_meters=radius_meters) for point in DEFAULT_MEETING_POINTS)


def calculate_distance(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance between two coordinates in metres."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def is_within_geofence(location: Coordinates, point: GeofencePoint) -> bool:
    return calculate_distance(location, point.coordinates) <= point.radius_meters


def find_nearest_meeting_point(
    location: Coordinates,
    points: Sequence[GeofencePoint]
) -> Optional[Tuple[GeofencePoint, float]]:
    """Nearest point and its distance; the first one wins a tie."""
    nearest: Optional[Tuple[GeofencePoint, float]] = None
    for point in points:
        distance = calculate_distance(location, point.coordinates)
        if nearest is None or distance < nearest[1]:
            nearest = (point, distance)
    return nearest


def validate_check_in(
    location: Coordinates,
    target: Optional[GeofencePoint] = None,
    points: Sequence[GeofencePoint] = DEFAULT_MEETING_POINTS
) -> CheckInResult:
    """
    Decide whether a check-in from ``location`` is allowed.

    With a ``target`` the check is against that meeting point only; otherwise
    against the nearest of ``points``.
    """
    if target is not None:
        point, distance = target, calculate_distance(location, target.coordinates)
    else:
        nearest = find_nearest_meeting_point(location, points)
        if nearest is None:
            return CheckInResult(
                allowed=False,
                distance_meters=0,
                meeting_point=None,
                message="Tidak ada meeting point yang tersedia",
            )
        point, distance = nearest

    rounded = round(distance)
    if distance <= point.radius_meters:
        message = f"Check-in berhasil di {point.name}"
        allowed = True
    else:
        message = (
            f"Anda berada {rounded}m dari {point.name}. "
            f"Check-in hanya bisa dalam radius {round(point.radius_meters)}m"
        )
        allowed = False

    return CheckInResult(
        allowed=allowed,
        distance_meters=rounded,
        meeting_point=point,
        message=message,
    )


async def get_geofencing_settings(
    db: AsyncSession,
    branch_id: Optional[str] = None
) -> GeofencingSettings:
    """GPS options for the guide app, with defaults for missing keys."""
    values = await get_settings(db, "geofencing", branch_id)
    defaults = GeofencingSettings()

    def pick(name: str, minimum: int = 0) -> int:
        return coerce_int(values.get(name), getattr(defaults, name), minimum=minimum, key=f"geofencing.{name}")

    return GeofencingSettings(
        gps_timeout_ms=pick("gps_timeout_ms"),
        gps_max_age_ms=pick("gps_max_age_ms"),
        gps_watch_max_age_ms=pick("gps_watch_max_age_ms"),
        default_radius_meters=pick("default_radius_meters", minimum=1),
    )
