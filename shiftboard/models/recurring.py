"""Recurring assignment domain model: standing weekday patterns per volunteer."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from shiftboard.scheduling.recurrence import sort_codes


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class RecurringAssignmentCreate(BaseModel):
    volunteer_id: int
    template_id: int
    starts_on: date
    ends_on: Optional[date] = None
    byday: list[str]


class RecurringAssignment(BaseModel):
    id: int
    volunteer_id: int
    template_id: int
    starts_on: date
    ends_on: Optional[date]
    byday: list[str]
    created_at: datetime


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def _row_to_recurring(row: sqlite3.Row) -> RecurringAssignment:
    return RecurringAssignment(
        id=row["id"],
        volunteer_id=row["volunteer_id"],
        template_id=row["template_id"],
        starts_on=date.fromisoformat(row["starts_on"]),
        ends_on=date.fromisoformat(row["ends_on"]) if row["ends_on"] else None,
        byday=[c for c in row["byday"].split(",") if c],
        created_at=row["created_at"],
    )


def create_recurring(
    db: sqlite3.Connection, data: RecurringAssignmentCreate
) -> RecurringAssignment:
    """Insert a pattern. byday is expected to be validated already."""
    cursor = db.execute(
        """INSERT INTO recurring_assignments
               (volunteer_id, template_id, starts_on, ends_on, byday)
           VALUES (?, ?, ?, ?, ?)""",
        (
            data.volunteer_id,
            data.template_id,
            data.starts_on.isoformat(),
            data.ends_on.isoformat() if data.ends_on else None,
            ",".join(sort_codes(data.byday)),
        ),
    )
    db.commit()
    return get_recurring(db, cursor.lastrowid)


def get_recurring(
    db: sqlite3.Connection, recurring_id: int
) -> Optional[RecurringAssignment]:
    row = db.execute(
        "SELECT * FROM recurring_assignments WHERE id = ?", (recurring_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_recurring(row)


def list_recurring_by_volunteer(
    db: sqlite3.Connection, volunteer_id: int
) -> list[RecurringAssignment]:
    rows = db.execute(
        "SELECT * FROM recurring_assignments WHERE volunteer_id = ? ORDER BY starts_on, id",
        (volunteer_id,),
    ).fetchall()
    return [_row_to_recurring(r) for r in rows]


def delete_recurring(db: sqlite3.Connection, recurring_id: int) -> bool:
    cursor = db.execute(
        "DELETE FROM recurring_assignments WHERE id = ?", (recurring_id,)
    )
    db.commit()
    return cursor.rowcount > 0
