"""
Seed a development database with one branch, one user per audience, a
package with price tiers, a trip at a meeting point and default settings.

Prints an access token for every seeded user.
"""

import asyncio
import logging
import sys
import os
from datetime import date, timedelta
from decimal import Decimal

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy import select
from core.database import async_session_maker
from core.logging import setup_logging
from core.security import create_access_token
from models import (
    Branch, User, Setting, Package, PackagePrice, SeasonCalendar,
    PartnerWallet, MeetingPoint, Trip, GuideLicense
)
from models.base import UserRole, LicenseStatus
from scripts.init_db import init_database

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = [
    # key, value, value_type, is_public
    ("geofencing.gps_timeout_ms", "10000", "number", True),
    ("geofencing.gps_max_age_ms", "0", "number", True),
    ("geofencing.gps_watch_max_age_ms", "5000", "number", True),
    ("geofencing.default_radius_meters", "50", "number", True),
    ("loyalty.points_per_100k", "10", "number", True),
    ("loyalty.redemption_value", "1", "number", True),
    ("loyalty.review_bonus", "50", "number", True),
    ("loyalty.min_booking_for_points", "100000", "number", True),
    ("loyalty.points_expiry_days", "365", "number", False),
    ("ratelimit.enabled", "true", "boolean", False),
    ("ratelimit.default_limit", "100", "number", False),
    ("ratelimit.api_limit", "200", "number", False),
    ("ratelimit.auth_limit", "10", "number", False),
    ("ratelimit.window_seconds", "60", "number", False),
    ("app.company_name", "Aero Travel", "string", True),
]

USERS = [
    ("admin@aerotravel.co.id", "Super Admin", UserRole.SUPER_ADMIN),
    ("ops@aerotravel.co.id", "Ops Lampung", UserRole.OPS_ADMIN),
    ("mitra@aerotravel.co.id", "Mitra Wisata", UserRole.MITRA),
    ("guide@aerotravel.co.id", "Guide Satu", UserRole.GUIDE),
    ("customer@aerotravel.co.id", "Pelanggan", UserRole.CUSTOMER),
]


async def seed():
    async with async_session_maker() as session:
        existing = (await session.execute(select(Branch).where(Branch.code == "LPG"))).scalar_one_or_none()
        if existing is not None:
            logger.info("Seed data already present, skipping")
            return

        branch = Branch(code="LPG", name="Lampung", tax_rate=Decimal("0.11"), tax_inclusive=False)
        session.add(branch)
        await session.flush()

        users = {}
        for email, name, role in USERS:
            user = User(
                email=email,
                full_name=name,
                phone="081200000000",
                role=role,
                branch_id=None if role == UserRole.SUPER_ADMIN else branch.id,
            )
            session.add(user)
            users[role] = user

        for key, value, value_type, is_public in DEFAULT_SETTINGS:
            session.add(Setting(key=key, value=value, value_type=value_type, is_public=is_public))

        package = Package(branch_id=branch.id, name="Pahawang Island Hopping", destination="Pulau Pahawang")
        session.add(package)
        await session.flush()

        session.add_all([
            PackagePrice(package_id=package.id, min_pax=1, max_pax=4,
                         price_publish=Decimal("500000"), price_nta=Decimal("400000"),
                         price_weekend=Decimal("600000")),
            PackagePrice(package_id=package.id, min_pax=5, max_pax=20,
                         price_publish=Decimal("450000"), price_nta=Decimal("360000"),
                         price_weekend=Decimal("540000")),
        ])

        year = date.today().year
        session.add(SeasonCalendar(
            branch_id=branch.id, name="Libur Akhir Tahun", season_type="high_season",
            start_date=date(year, 12, 20), end_date=date(year, 12, 31),
            markup_type="percent", markup_value=Decimal("20"),
        ))

        session.add(PartnerWallet(
            mitra_id=users[UserRole.MITRA].id,
            balance=Decimal("10000000"),
            credit_limit=Decimal("2000000"),
        ))

        meeting_point = MeetingPoint(
            branch_id=branch.id, name="Dermaga Ketapang",
            latitude=-5.4667, longitude=105.2833, radius_meters=50,
        )
        session.add(meeting_point)
        await session.flush()

        session.add(Trip(
            branch_id=branch.id, package_id=package.id, meeting_point_id=meeting_point.id,
            trip_code=f"TRIP-{date.today():%Y%m%d}-001", trip_date=date.today() + timedelta(days=1),
        ))

        session.add(GuideLicense(
            guide_id=users[UserRole.GUIDE].id, license_number="AERO-GL-0001",
            status=LicenseStatus.ACTIVE, issued_at=date.today() - timedelta(days=300),
            expiry_date=date.today() + timedelta(days=65),
        ))

        await session.commit()
        logger.info("Seed data created")

        for role, user in users.items():
            token = create_access_token(user.id, expires_delta=timedelta(days=30))
            logger.info(f"{role.value:<12} {user.email:<30} {token}")


async def main():
    await init_database()
    await seed()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
