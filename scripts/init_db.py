"""
Create (or recreate) the Aero Travel tables.

Usage:
    python scripts/init_db.py            # create missing tables
    python scripts/init_db.py --drop     # drop everything first (local only)

Production schema changes go through Alembic; this script is for local
databases and CI.
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine
from core.logging import setup_logging
from models import Base

logger = logging.getLogger(__name__)


async def init_database(database_url: str = None, drop: bool = False):
    engine = build_engine(database_url, echo=False)

    try:
        async with engine.begin() as conn:
            if drop:
                if settings.ENVIRONMENT == "production":
                    raise RuntimeError("Refusing to drop tables in production")
                logger.warning("Dropping all tables")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()

    logger.info(f"Schema ready ({len(Base.metadata.tables)} tables): {', '.join(sorted(Base.metadata.tables))}")


def main():
    parser = argparse.ArgumentParser(description="Create the database schema")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(args.database_url, drop=args.drop))


if __name__ == "__main__":
    main()
