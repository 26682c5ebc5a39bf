"""Background jobs: shift reminders and proactive instance materialization."""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from shiftboard.db import get_db_connection
from shiftboard.notifications.reminders import schedule_shift_reminders
from shiftboard.scheduling.materializer import materialize_week, week_start

log = logging.getLogger("shiftboard.scheduler")

UPCOMING_WEEKS = 2


def run_materialize_upcoming(today: Optional[date] = None) -> int:
    """Persist instances for the current and next week."""
    db = get_db_connection(os.getenv("DB_PATH", "shiftboard.db"))
    try:
        today = today or date.today()
        return sum(
            materialize_week(db, week_start(today, offset)) for offset in range(UPCOMING_WEEKS)
        )
    finally:
        db.close()


def schedule_materialization(scheduler: BaseScheduler) -> None:
    scheduler.add_job(
        run_materialize_upcoming,
        "cron",
        hour=3,
        minute=0,
        id="materialize-upcoming-weeks",
        replace_existing=True,
    )


def start_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    schedule_shift_reminders(scheduler)
    schedule_materialization(scheduler)
    scheduler.start()
    log.info("scheduler started with jobs: %s", [job.id for job in scheduler.get_jobs()])
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
