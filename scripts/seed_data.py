#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a demo profile for development
"""

import sys
import os
import argparse
import asyncio
import logging
from datetime import timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import create_db_engine, create_session_factory, init_db, drop_db
from models import SourceKind
from domain import Custom, Daily, Weekly
from services.container import ServiceContainer, build_services
from tools.recurrence import recurrence_engine


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEMO_SOURCES = [
    (SourceKind.MEDICATION, {
        "name": "Metformin", "dosage": "500mg", "form": "tablet",
        "time_of_day": ["08:00", "20:00"], "frequency_rule": Daily(),
        "current_quantity": 60,
    }),
    (SourceKind.MEDICATION, {
        "name": "Vitamin B12 injection", "dosage": "1000mcg", "form": "injection",
        "time_of_day": ["09:00"], "frequency_rule": Weekly(days_of_week=frozenset({1})),
        "current_quantity": 4,
    }),
    (SourceKind.MEDICATION, {
        "name": "Ibuprofen", "dosage": "200mg", "form": "tablet",
        "time_of_day": ["12:00"], "frequency_rule": Custom(interval=0),
        "current_quantity": 20,
    }),
    (SourceKind.SUPPLEMENT, {
        "name": "Vitamin D3", "dosage": "2000 IU", "form": "capsule",
        "time_of_day": ["08:00"], "frequency_rule": Daily(),
        "current_quantity": 9,
    }),
    (SourceKind.SUPPLEMENT, {
        "name": "Omega-3", "dosage": "1g", "form": "softgel",
        "time_of_day": ["13:00"], "frequency_rule": Custom(interval=2),
        "current_quantity": 30,
    }),
]


async def seed_demo_profile(services: ServiceContainer, history_days: int = 14) -> str:
    """Create a demo profile with sources, events and some recorded doses"""
    logger.info("Creating demo profile...")
    profile = services.profile_store.create("Demo User", is_primary=True)
    now = services.clock()
    start = now - timedelta(days=history_days)

    for kind, fields in DEMO_SOURCES:
        source = services.source_store.create(kind, profile.id, created_at=start, **fields)

        # reconcile never writes before now, so backfill the past directly
        past = recurrence_engine.generate(
            source.rule, source.time_of_day, start, now, anchor=source.created_at
        )
        services.calendar_store.insert_many([
            {
                "profile_id": profile.id,
                "source_id": source.id,
                "event_type": source.event_type,
                "title": source.display_title,
                "scheduled_time": t,
            }
            for t in past
        ])
        await services.event_generation.reconcile(source)

    # Every third past obligation is left untouched and shows up as missed
    for i, event in enumerate(services.calendar_store.get_overdue(profile.id, now)):
        if i % 3 == 0:
            continue
        if i % 7 == 0:
            await services.actions.mark_skipped(event.source_id, event.scheduled_time, notes="demo skip")
        else:
            await services.actions.mark_taken(event.source_id, event.scheduled_time)

    logger.info(f"Demo profile {profile.id} seeded")
    return profile.id


def seed_all(clear_existing: bool = False, database_url: str = settings.DATABASE_URL):
    """Seed all demo data"""
    engine = create_db_engine(database_url)
    if clear_existing:
        drop_db(engine)
    init_db(engine)

    try:
        services = build_services(create_session_factory(engine), settings)
        asyncio.run(seed_demo_profile(services))
    finally:
        engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with demo data"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    seed_all(clear_existing=args.clear)


if __name__ == "__main__":
    main()
