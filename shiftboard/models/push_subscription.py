from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PushSubscriptionCreate(BaseModel):
    endpoint: str
    p256dh: str
    auth: str


class PushSubscription(BaseModel):
    id: int
    user_id: int
    endpoint: str
    p256dh: str
    auth: str
    created_at: Optional[datetime]


def _row_to_subscription(row: sqlite3.Row) -> PushSubscription:
    return PushSubscription(
        id=row["id"],
        user_id=row["user_id"],
        endpoint=row["endpoint"],
        p256dh=row["p256dh"],
        auth=row["auth"],
        created_at=row["created_at"],
    )


def upsert_subscription(
    db: sqlite3.Connection, user_id: int, data: PushSubscriptionCreate
) -> PushSubscription:
    """Register a device endpoint, refreshing keys if it is already known."""
    db.execute(
        """INSERT INTO push_subscriptions (user_id, endpoint, p256dh, auth)
           VALUES (?, ?, ?, ?)
           ON CONFLICT(user_id, endpoint) DO UPDATE SET
               p256dh = excluded.p256dh,
               auth = excluded.auth""",
        (user_id, data.endpoint, data.p256dh, data.auth),
    )
    db.commit()
    row = db.execute(
        "SELECT * FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
        (user_id, data.endpoint),
    ).fetchone()
    return _row_to_subscription(row)


def list_subscriptions(db: sqlite3.Connection, user_ids: list[int]) -> list[PushSubscription]:
    if not user_ids:
        return []
    placeholders = ", ".join("?" for _ in user_ids)
    rows = db.execute(
        f"SELECT * FROM push_subscriptions WHERE user_id IN ({placeholders}) ORDER BY id",
        tuple(user_ids),
    ).fetchall()
    return [_row_to_subscription(r) for r in rows]


def delete_subscription(db: sqlite3.Connection, user_id: int, endpoint: str) -> None:
    """Remove a dead endpoint reported gone by the push service."""
    db.execute(
        "DELETE FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
        (user_id, endpoint),
    )
    db.commit()
