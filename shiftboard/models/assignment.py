"""Shift assignment domain model: Pydantic schemas and CRUD functions.

Every write that creates or reopens an assignment goes through the
(shift_instance_id, volunteer_id) upsert, so one volunteer holds at most
one row per instance.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Iterable, Literal, Optional

from pydantic import BaseModel

from shiftboard.models.profile import Role


AssignmentStatus = Literal["pending", "active", "dropped"]
AssignmentRole = Literal["lead", "regular"]

OPEN_STATUSES = ("active", "pending")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ShiftAssignment(BaseModel):
    id: int
    shift_instance_id: int
    volunteer_id: int
    status: AssignmentStatus
    assignment_role: AssignmentRole
    created_at: datetime
    dropped_at: Optional[datetime]
    dropped_reason: Optional[str]
    notes: Optional[str]
    recurring_assignment_id: Optional[int]


class AssignmentDetail(ShiftAssignment):
    """An assignment joined with its volunteer, instance and template."""

    volunteer_name: Optional[str]
    volunteer_role: Optional[Role]
    volunteer_phone: Optional[str]
    template_id: int
    template_title: str
    shift_date: date
    starts_at: datetime
    ends_at: datetime


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _row_to_assignment(row: sqlite3.Row) -> ShiftAssignment:
    return ShiftAssignment(
        id=row["id"],
        shift_instance_id=row["shift_instance_id"],
        volunteer_id=row["volunteer_id"],
        status=row["status"],
        assignment_role=row["assignment_role"],
        created_at=row["created_at"],
        dropped_at=row["dropped_at"],
        dropped_reason=row["dropped_reason"],
        notes=row["notes"],
        recurring_assignment_id=row["recurring_assignment_id"],
    )


def _row_to_detail(row: sqlite3.Row) -> AssignmentDetail:
    base = _row_to_assignment(row)
    return AssignmentDetail(
        **base.model_dump(),
        volunteer_name=row["preferred_name"] or row["full_name"],
        volunteer_role=Role(row["volunteer_role"]) if row["volunteer_role"] else None,
        volunteer_phone=row["volunteer_phone"],
        template_id=row["template_id"],
        template_title=row["template_title"],
        shift_date=date.fromisoformat(row["shift_date"]),
        starts_at=datetime.fromisoformat(row["starts_at"]),
        ends_at=datetime.fromisoformat(row["ends_at"]),
    )


_DETAIL_SELECT = """
    SELECT a.*,
           p.full_name, p.preferred_name,
           p.role AS volunteer_role, p.phone AS volunteer_phone,
           i.template_id, i.shift_date, i.starts_at, i.ends_at,
           t.title AS template_title
    FROM shift_assignments a
    JOIN profiles p ON p.id = a.volunteer_id
    JOIN shift_instances i ON i.id = a.shift_instance_id
    JOIN shift_templates t ON t.id = i.template_id
"""


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------

_UPSERT_SQL = """
    INSERT INTO shift_assignments
        (shift_instance_id, volunteer_id, status, assignment_role, recurring_assignment_id)
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT(shift_instance_id, volunteer_id) DO UPDATE SET
        status = excluded.status,
        assignment_role = excluded.assignment_role,
        dropped_at = NULL,
        dropped_reason = NULL,
        created_at = CASE WHEN shift_assignments.status = 'dropped'
                          THEN CURRENT_TIMESTAMP
                          ELSE shift_assignments.created_at END,
        recurring_assignment_id = CASE WHEN shift_assignments.status = 'dropped'
                                       THEN excluded.recurring_assignment_id
                                       ELSE shift_assignments.recurring_assignment_id END
"""


def upsert_assignment(
    db: sqlite3.Connection,
    shift_instance_id: int,
    volunteer_id: int,
    status: AssignmentStatus,
    assignment_role: AssignmentRole,
    recurring_assignment_id: Optional[int] = None,
) -> ShiftAssignment:
    """Create or overwrite the row for (instance, volunteer).

    Drop metadata is always cleared.  A reopened dropped row gets a fresh
    created_at and takes the new provenance; an open row keeps both.
    """
    db.execute(
        _UPSERT_SQL,
        (shift_instance_id, volunteer_id, status, assignment_role, recurring_assignment_id),
    )
    db.commit()
    return find_assignment(db, shift_instance_id, volunteer_id)


def bulk_upsert_assignments(
    db: sqlite3.Connection,
    shift_instance_ids: list[int],
    volunteer_id: int,
    status: AssignmentStatus,
    assignment_role: AssignmentRole,
    recurring_assignment_id: Optional[int] = None,
) -> int:
    """Upsert one row per instance in a single transaction. Returns the row count."""
    with db:
        db.executemany(
            _UPSERT_SQL,
            [
                (instance_id, volunteer_id, status, assignment_role, recurring_assignment_id)
                for instance_id in shift_instance_ids
            ],
        )
    return len(shift_instance_ids)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_assignment(db: sqlite3.Connection, assignment_id: int) -> Optional[ShiftAssignment]:
    row = db.execute(
        "SELECT * FROM shift_assignments WHERE id = ?", (assignment_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_assignment(row)


def get_assignment_detail(
    db: sqlite3.Connection, assignment_id: int
) -> Optional[AssignmentDetail]:
    row = db.execute(_DETAIL_SELECT + " WHERE a.id = ?", (assignment_id,)).fetchone()
    if row is None:
        return None
    return _row_to_detail(row)


def find_assignment(
    db: sqlite3.Connection, shift_instance_id: int, volunteer_id: int
) -> Optional[ShiftAssignment]:
    row = db.execute(
        "SELECT * FROM shift_assignments WHERE shift_instance_id = ? AND volunteer_id = ?",
        (shift_instance_id, volunteer_id),
    ).fetchone()
    if row is None:
        return None
    return _row_to_assignment(row)


def list_assignments_by_instance(
    db: sqlite3.Connection, shift_instance_id: int
) -> list[ShiftAssignment]:
    """Return every row for an instance, dropped included."""
    rows = db.execute(
        "SELECT * FROM shift_assignments WHERE shift_instance_id = ? ORDER BY created_at, id",
        (shift_instance_id,),
    ).fetchall()
    return [_row_to_assignment(r) for r in rows]


def list_open_for_instances(
    db: sqlite3.Connection, shift_instance_ids: list[int]
) -> dict[int, list[AssignmentDetail]]:
    """Return active/pending assignments grouped by instance id."""
    grouped: dict[int, list[AssignmentDetail]] = {}
    ids = [i for i in shift_instance_ids if i > 0]
    if not ids:
        return grouped
    rows = db.execute(
        _DETAIL_SELECT
        + f""" WHERE a.shift_instance_id IN ({_placeholders(ids)})
               AND a.status IN ('active', 'pending')
               ORDER BY a.created_at, a.id""",
        tuple(ids),
    ).fetchall()
    for row in rows:
        detail = _row_to_detail(row)
        grouped.setdefault(detail.shift_instance_id, []).append(detail)
    return grouped


def list_for_volunteer_between(
    db: sqlite3.Connection, volunteer_id: int, start: date, end: date
) -> list[AssignmentDetail]:
    """Return a volunteer's active/pending assignments with shift_date in [start, end]."""
    rows = db.execute(
        _DETAIL_SELECT
        + """ WHERE a.volunteer_id = ?
              AND a.status IN ('active', 'pending')
              AND i.shift_date >= ? AND i.shift_date <= ?
              ORDER BY i.shift_date, i.starts_at, a.id""",
        (volunteer_id, start.isoformat(), end.isoformat()),
    ).fetchall()
    return [_row_to_detail(r) for r in rows]


def list_admin_feed(db: sqlite3.Connection) -> list[AssignmentDetail]:
    """Pending requests and drops across all volunteers, oldest first."""
    rows = db.execute(
        _DETAIL_SELECT
        + " WHERE a.status IN ('pending', 'dropped') ORDER BY a.created_at, a.id"
    ).fetchall()
    return [_row_to_detail(r) for r in rows]


def list_volunteer_feed(db: sqlite3.Connection, volunteer_id: int) -> list[AssignmentDetail]:
    """A volunteer's own active and dropped assignments, newest first."""
    rows = db.execute(
        _DETAIL_SELECT
        + """ WHERE a.volunteer_id = ? AND a.status IN ('active', 'dropped')
              ORDER BY a.created_at DESC, a.id DESC""",
        (volunteer_id,),
    ).fetchall()
    return [_row_to_detail(r) for r in rows]


# ---------------------------------------------------------------------------
# State updates
# ---------------------------------------------------------------------------

def mark_active(db: sqlite3.Connection, assignment_id: int) -> Optional[ShiftAssignment]:
    db.execute(
        "UPDATE shift_assignments SET status = 'active' WHERE id = ?", (assignment_id,)
    )
    db.commit()
    return get_assignment(db, assignment_id)


def mark_dropped(
    db: sqlite3.Connection, assignment_id: int, reason: str
) -> Optional[ShiftAssignment]:
    """Set status=dropped with the current timestamp and the given reason."""
    db.execute(
        """UPDATE shift_assignments
           SET status = 'dropped', dropped_at = CURRENT_TIMESTAMP, dropped_reason = ?
           WHERE id = ?""",
        (reason, assignment_id),
    )
    db.commit()
    return get_assignment(db, assignment_id)


def set_assignment_notes(
    db: sqlite3.Connection, assignment_id: int, notes: Optional[str]
) -> Optional[ShiftAssignment]:
    cleaned = (notes or "").strip() or None
    db.execute(
        "UPDATE shift_assignments SET notes = ? WHERE id = ?", (cleaned, assignment_id)
    )
    db.commit()
    return get_assignment(db, assignment_id)


def delete_pattern_assignments(
    db: sqlite3.Connection,
    recurring_assignment_id: int,
    volunteer_id: int,
    shift_instance_ids: list[int],
) -> int:
    """Delete the rows a recurring pattern produced within the given instances."""
    if not shift_instance_ids:
        return 0
    cursor = db.execute(
        f"""DELETE FROM shift_assignments
            WHERE volunteer_id = ?
              AND recurring_assignment_id = ?
              AND shift_instance_id IN ({_placeholders(shift_instance_ids)})""",
        (volunteer_id, recurring_assignment_id, *shift_instance_ids),
    )
    db.commit()
    return cursor.rowcount
