from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timedelta
from typing import Iterable, Optional

from apscheduler.schedulers.base import BaseScheduler

from shiftboard.db import get_db_connection
from shiftboard.models.notification import reminder_sent
from shiftboard.notifications.push import send_push

log = logging.getLogger("shiftboard.reminders")

LEAD_TIME = timedelta(hours=2)
WINDOW = timedelta(minutes=10)


def schedule_shift_reminders(scheduler: BaseScheduler) -> None:
    scheduler.add_job(
        run_shift_reminders,
        "cron",
        minute="*/5",
        id="shift-reminders-every-5m",
        replace_existing=True,
    )


def run_shift_reminders(now: Optional[datetime] = None) -> int:
    db_path = os.getenv("DB_PATH", "shiftboard.db")
    db = get_db_connection(db_path)
    try:
        start = (now or datetime.now()).replace(microsecond=0) + LEAD_TIME
        return _send_reminders_between(db, start, start + WINDOW)
    finally:
        db.close()


def _send_reminders_between(db: sqlite3.Connection, start: datetime, end: datetime) -> int:
    """Remind every active volunteer whose shift starts in [start, end).

    Each (volunteer, instance) pair is reminded at most once.
    """
    sent = 0
    for row in _get_active_assignments_starting(db, start, end):
        if reminder_sent(db, row["volunteer_id"], row["shift_instance_id"]):
            continue
        body = f"Your {row['title']} starts in 2 hours." if row["title"] else "Your shift starts in 2 hours."
        send_push(
            db,
            row["volunteer_id"],
            "Shift reminder",
            body,
            url="/",
            notification_type="reminder",
            shift_instance_id=row["shift_instance_id"],
        )
        sent += 1
    if sent:
        log.info("sent %d shift reminders for %s..%s", sent, start, end)
    return sent


def _get_active_assignments_starting(
    db: sqlite3.Connection, start: datetime, end: datetime
) -> Iterable[sqlite3.Row]:
    return db.execute(
        """
        SELECT a.volunteer_id, a.shift_instance_id, t.title
        FROM shift_assignments a
        JOIN shift_instances i ON i.id = a.shift_instance_id
        JOIN shift_templates t ON t.id = i.template_id
        WHERE a.status = 'active' AND i.starts_at >= ? AND i.starts_at < ?
        """,
        (start.isoformat(), end.isoformat()),
    ).fetchall()
