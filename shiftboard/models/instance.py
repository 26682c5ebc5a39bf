"""Shift instance domain model: one dated occurrence of a template."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ShiftInstance(BaseModel):
    id: int
    template_id: int
    shift_date: date
    starts_at: datetime
    ends_at: datetime
    notes: Optional[str]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def _row_to_instance(row: sqlite3.Row) -> ShiftInstance:
    return ShiftInstance(
        id=row["id"],
        template_id=row["template_id"],
        shift_date=date.fromisoformat(row["shift_date"]),
        starts_at=datetime.fromisoformat(row["starts_at"]),
        ends_at=datetime.fromisoformat(row["ends_at"]),
        notes=row["notes"],
    )


def get_instance(db: sqlite3.Connection, instance_id: int) -> Optional[ShiftInstance]:
    row = db.execute(
        "SELECT * FROM shift_instances WHERE id = ?", (instance_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_instance(row)


def find_instance(
    db: sqlite3.Connection, template_id: int, shift_date: date
) -> Optional[ShiftInstance]:
    """Return the persisted instance for (template, date), if any."""
    row = db.execute(
        """SELECT * FROM shift_instances
           WHERE template_id = ? AND shift_date = ?
           ORDER BY id LIMIT 1""",
        (template_id, shift_date.isoformat()),
    ).fetchone()
    if row is None:
        return None
    return _row_to_instance(row)


def list_instances_between(
    db: sqlite3.Connection,
    start: date,
    end: date,
    template_id: Optional[int] = None,
) -> list[ShiftInstance]:
    """Return instances whose shift_date falls in [start, end], by start time."""
    if template_id is None:
        rows = db.execute(
            """SELECT * FROM shift_instances
               WHERE shift_date >= ? AND shift_date <= ?
               ORDER BY starts_at, id""",
            (start.isoformat(), end.isoformat()),
        ).fetchall()
    else:
        rows = db.execute(
            """SELECT * FROM shift_instances
               WHERE template_id = ? AND shift_date >= ? AND shift_date <= ?
               ORDER BY starts_at, id""",
            (template_id, start.isoformat(), end.isoformat()),
        ).fetchall()
    return [_row_to_instance(r) for r in rows]


def insert_instances_if_absent(
    db: sqlite3.Connection, rows: list[tuple[int, date, datetime, datetime]]
) -> int:
    """Insert (template_id, shift_date, starts_at, ends_at) rows.

    Conflicts on (template_id, shift_date) are ignored, so concurrent
    callers can never produce two rows for the same template and date.
    Returns the number of rows actually inserted.
    """
    before = db.total_changes
    db.executemany(
        """INSERT INTO shift_instances (template_id, shift_date, starts_at, ends_at)
           VALUES (?, ?, ?, ?)
           ON CONFLICT(template_id, shift_date) DO NOTHING""",
        [
            (template_id, d.isoformat(), starts.isoformat(), ends.isoformat())
            for template_id, d, starts, ends in rows
        ],
    )
    db.commit()
    return db.total_changes - before


def update_instance_notes(
    db: sqlite3.Connection, instance_id: int, notes: Optional[str]
) -> Optional[ShiftInstance]:
    cleaned = (notes or "").strip() or None
    db.execute(
        "UPDATE shift_instances SET notes = ? WHERE id = ?", (cleaned, instance_id)
    )
    db.commit()
    return get_instance(db, instance_id)
