#!/usr/bin/env python3
"""Run the periodic review catch-up once (cron entry point)."""

import asyncio
import logging

from config import settings
from database import build_engine, build_sessionmaker
from review_service import ReviewScheduler

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
log = logging.getLogger(__name__)


async def run_review_scheduler():
    engine = build_engine(settings.DATABASE_URL)
    session_factory = build_sessionmaker(engine)
    try:
        async with session_factory() as db:
            created = await ReviewScheduler.run_scheduler(db, settings.REVIEW_INTERVAL_MONTHS)
        for review in created:
            log.info(f"Scheduled review for customer {review.customer_id} on {review.scheduled_date.isoformat()}")
        print(f"[OK] {len(created)} review(s) scheduled")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(run_review_scheduler())
