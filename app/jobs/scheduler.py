"""APScheduler setup and job registration."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings
from app.jobs.election_status_sync import election_status_sync
from app.jobs.tally_reconcile import tally_reconcile

scheduler = AsyncIOScheduler(timezone=settings.timezone)


def register_jobs() -> None:
    """Register all periodic jobs if not already present."""
    if scheduler.get_job("election_status_sync") is None:
        scheduler.add_job(
            election_status_sync,
            IntervalTrigger(
                minutes=settings.status_sync_interval_minutes,
                timezone=settings.timezone,
            ),
            id="election_status_sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    if scheduler.get_job("tally_reconcile") is None:
        scheduler.add_job(
            tally_reconcile,
            IntervalTrigger(
                minutes=settings.tally_reconcile_interval_minutes,
                timezone=settings.timezone,
            ),
            id="tally_reconcile",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
