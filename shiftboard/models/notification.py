from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class NotificationCreate(BaseModel):
    user_id: Optional[int]
    type: Literal["push", "admin_push", "reminder"]
    title: str
    body: str
    shift_instance_id: Optional[int] = None


class Notification(BaseModel):
    id: int
    user_id: Optional[int]
    type: str
    title: str
    body: str
    shift_instance_id: Optional[int]
    sent_count: int
    failed_count: int
    skipped: bool
    error: Optional[str]
    created_at: datetime


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        body=row["body"],
        shift_instance_id=row["shift_instance_id"],
        sent_count=row["sent_count"],
        failed_count=row["failed_count"],
        skipped=bool(row["skipped"]),
        error=row["error"],
        created_at=row["created_at"],
    )


def create_notification(db: sqlite3.Connection, data: NotificationCreate) -> Notification:
    """Insert a new notification and return the created record."""
    cursor = db.execute(
        """INSERT INTO notifications (user_id, type, title, body, shift_instance_id)
           VALUES (?, ?, ?, ?, ?)""",
        (data.user_id, data.type, data.title, data.body, data.shift_instance_id),
    )
    db.commit()
    return get_notification(db, cursor.lastrowid)


def get_notification(db: sqlite3.Connection, notification_id: int) -> Optional[Notification]:
    """Look up a notification by ID. Returns None if not found."""
    row = db.execute(
        "SELECT * FROM notifications WHERE id = ?", (notification_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_notification(row)


def list_notifications_by_user(db: sqlite3.Connection, user_id: int) -> list[Notification]:
    """Return all notifications addressed to a specific user."""
    rows = db.execute(
        "SELECT * FROM notifications WHERE user_id = ? ORDER BY id DESC",
        (user_id,),
    ).fetchall()
    return [_row_to_notification(r) for r in rows]


def record_outcome(
    db: sqlite3.Connection,
    notification_id: int,
    sent: int,
    failed: int,
    skipped: bool = False,
    error: Optional[str] = None,
) -> Optional[Notification]:
    """Store delivery counts (and any error) on a notification."""
    db.execute(
        """UPDATE notifications
           SET sent_count = ?, failed_count = ?, skipped = ?, error = ?
           WHERE id = ?""",
        (sent, failed, skipped, error, notification_id),
    )
    db.commit()
    return get_notification(db, notification_id)


def reminder_sent(db: sqlite3.Connection, user_id: int, shift_instance_id: int) -> bool:
    """True when a reminder for this user and instance was already dispatched."""
    row = db.execute(
        """
        SELECT 1 FROM notifications
        WHERE user_id = ? AND type = 'reminder' AND shift_instance_id = ?
        LIMIT 1
        """,
        (user_id, shift_instance_id),
    ).fetchone()
    return row is not None
