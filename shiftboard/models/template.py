"""Shift template domain model: Pydantic schemas, CRUD functions, and helpers."""

from __future__ import annotations

import sqlite3
from datetime import datetime, time
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shiftboard.scheduling.recurrence import (
    Recurrence,
    normalize_byday,
    parse_rrule,
    sort_codes,
)


DEFAULT_CAPACITY = 6


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ShiftTemplateCreate(BaseModel):
    """Incoming template definition.

    ``byday`` is the preferred form.  ``rrule`` is accepted for legacy
    templates and is only used when ``byday`` is absent.
    """

    title: str = Field(min_length=1)
    description: Optional[str] = None
    start_time: time
    end_time: time
    byday: Optional[list[str]] = None
    rrule: Optional[str] = None
    capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    is_active: bool = True

    @field_validator("byday")
    @classmethod
    def _check_byday(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        return sort_codes(normalize_byday(value))

    @model_validator(mode="after")
    def _require_recurrence(self) -> "ShiftTemplateCreate":
        if not self.byday and not self.rrule:
            raise ValueError("Either byday or rrule is required")
        return self

    def recurrence(self) -> Recurrence:
        if self.byday:
            return Recurrence(freq="WEEKLY", byday=frozenset(self.byday))
        return parse_rrule(self.rrule)


class ShiftTemplateUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ShiftTemplate(BaseModel):
    id: int
    title: str
    description: Optional[str]
    start_time: time
    end_time: time
    recurrence: Recurrence
    capacity: int
    is_active: bool
    created_at: datetime


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _split(value: str) -> list[str]:
    return [part for part in (value or "").split(",") if part]


def _row_to_template(row: sqlite3.Row) -> ShiftTemplate:
    """Convert a sqlite3.Row into a ShiftTemplate model."""
    recurrence = Recurrence(
        freq=row["recurrence_freq"],
        byday=frozenset(_split(row["recurrence_byday"])),
        bymonthday=frozenset(int(n) for n in _split(row["recurrence_bymonthday"])),
    )
    return ShiftTemplate(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        start_time=time.fromisoformat(row["start_time"]),
        end_time=time.fromisoformat(row["end_time"]),
        recurrence=recurrence,
        capacity=row["capacity"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
    )


def template_to_dict(template: ShiftTemplate) -> dict:
    """JSON-friendly view of a template for API responses."""
    return {
        "id": template.id,
        "title": template.title,
        "description": template.description,
        "start_time": template.start_time.strftime("%H:%M"),
        "end_time": template.end_time.strftime("%H:%M"),
        "byday": sort_codes(template.recurrence.byday),
        "rrule": template.recurrence.to_rrule(),
        "repeats": template.recurrence.describe(),
        "capacity": template.capacity,
        "is_active": template.is_active,
    }


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_template(db: sqlite3.Connection, data: ShiftTemplateCreate) -> ShiftTemplate:
    """Insert a new template with its normalized recurrence and return it."""
    recurrence = data.recurrence()
    cursor = db.execute(
        """INSERT INTO shift_templates
               (title, description, start_time, end_time,
                recurrence_freq, recurrence_byday, recurrence_bymonthday,
                capacity, is_active)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            data.title,
            data.description,
            data.start_time.strftime("%H:%M"),
            data.end_time.strftime("%H:%M"),
            recurrence.freq,
            ",".join(sort_codes(recurrence.byday)),
            ",".join(str(n) for n in sorted(recurrence.bymonthday)),
            data.capacity,
            data.is_active,
        ),
    )
    db.commit()
    return get_template(db, cursor.lastrowid)


def get_template(db: sqlite3.Connection, template_id: int) -> Optional[ShiftTemplate]:
    row = db.execute(
        "SELECT * FROM shift_templates WHERE id = ?", (template_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_template(row)


def list_templates(db: sqlite3.Connection, active_only: bool = True) -> list[ShiftTemplate]:
    """Return templates ordered by start time, then title."""
    if active_only:
        rows = db.execute(
            "SELECT * FROM shift_templates WHERE is_active = 1 ORDER BY start_time, title"
        ).fetchall()
    else:
        rows = db.execute(
            "SELECT * FROM shift_templates ORDER BY start_time, title"
        ).fetchall()
    return [_row_to_template(r) for r in rows]


def update_template_metadata(
    db: sqlite3.Connection, template_id: int, data: ShiftTemplateUpdate
) -> Optional[ShiftTemplate]:
    """Update title, description and active flag.

    Times, recurrence and capacity are never touched here: instances
    already materialized from the template depend on them.
    """
    current = get_template(db, template_id)
    if current is None:
        return None
    db.execute(
        "UPDATE shift_templates SET title = ?, description = ?, is_active = ? WHERE id = ?",
        (
            data.title if data.title is not None else current.title,
            data.description if data.description is not None else current.description,
            data.is_active if data.is_active is not None else current.is_active,
            template_id,
        ),
    )
    db.commit()
    return get_template(db, template_id)
