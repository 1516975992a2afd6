#!/usr/bin/env python
"""
Regenerate Events
Roll the scheduling horizon forward for every profile (or one profile).

Run it daily so pending events always cover the next HORIZON_DAYS days.
Usage: python scripts/regenerate_events.py [--profile-id ID] [--days-ahead N]
"""

import sys
import os
import argparse
import asyncio
import logging
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import create_db_engine, create_session_factory, init_db
from domain import ReconcileResult
from exceptions import SchedulingError
from services.container import ServiceContainer, build_services


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def regenerate_all(
    services: ServiceContainer,
    profile_id: Optional[str] = None,
    days_ahead: Optional[int] = None
) -> List[ReconcileResult]:
    """Reconcile every source of the selected profiles"""
    if profile_id:
        profile_ids = [profile_id]
    else:
        profile_ids = [p.id for p in services.profile_store.list_all()]

    results: List[ReconcileResult] = []
    for pid in profile_ids:
        try:
            results.extend(await services.event_generation.regenerate_profile(pid, days_ahead))
        except SchedulingError as e:
            logger.error(f"Regeneration failed for profile {pid}: {e}")
    return results


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Roll the calendar event horizon forward"
    )
    parser.add_argument(
        "--profile-id",
        default=None,
        help="Only regenerate this profile"
    )
    parser.add_argument(
        "--days-ahead",
        type=int,
        default=None,
        help=f"Horizon in days (default {settings.HORIZON_DAYS})"
    )
    parser.add_argument(
        "--database-url",
        default=settings.DATABASE_URL,
        help="Database URL (default from settings)"
    )

    args = parser.parse_args(argv)

    engine = create_db_engine(args.database_url, echo=settings.DATABASE_ECHO)
    init_db(engine)
    services = build_services(create_session_factory(engine), settings)

    try:
        results = asyncio.run(regenerate_all(services, args.profile_id, args.days_ahead))
    finally:
        engine.dispose()

    inserted = sum(r.inserted for r in results)
    deleted = sum(r.deleted for r in results)
    logger.info(f"Reconciled {len(results)} sources: {inserted} inserted, {deleted} deleted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
