"""Turn template projections into persisted shift instances.

Two paths create instances:

- bulk: ``materialize_week`` inserts every missing (template, date) pair of
  the visible week.  A failed insert is logged and swallowed; the week view
  then shows virtual placeholders for the gaps.
- lazy: ``ensure_instance`` / ``resolve_instance_id`` persist one pair on
  the first interaction with a virtual placeholder.

Both rely on the UNIQUE(template_id, shift_date) conflict target, so two
callers racing on the same pair end up sharing one row.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from shiftboard.models.instance import (
    find_instance,
    insert_instances_if_absent,
    list_instances_between,
)
from shiftboard.models.template import (
    DEFAULT_CAPACITY,
    ShiftTemplate,
    get_template,
    list_templates,
)
from shiftboard.scheduling.recurrence import occurrences

log = logging.getLogger("shiftboard.materializer")

DAYS_IN_WEEK = 7


class WeekShift(BaseModel):
    """One calendar cell: a persisted instance or a virtual placeholder."""

    instance_id: int
    template_id: int
    title: str
    shift_date: date
    starts_at: datetime
    ends_at: datetime
    capacity: int
    notes: Optional[str] = None
    is_virtual: bool = False


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------

def week_start(day: date, offset: int = 0) -> date:
    """Monday of the week containing ``day``, shifted by ``offset`` weeks."""
    return day - timedelta(days=day.weekday()) + timedelta(weeks=offset)


def week_end(start: date) -> date:
    return start + timedelta(days=DAYS_IN_WEEK - 1)


def instance_times(template: ShiftTemplate, shift_date: date) -> tuple[datetime, datetime]:
    """Anchor the template's time-of-day fields to a calendar date.

    An end time at or before the start time belongs to the next day.
    """
    starts_at = datetime.combine(shift_date, template.start_time)
    ends_at = datetime.combine(shift_date, template.end_time)
    if ends_at <= starts_at:
        ends_at += timedelta(days=1)
    return starts_at, ends_at


def virtual_instance_id(template_id: int, shift_date: date) -> int:
    """Stable negative id for a (template, date) pair that has no row yet.

    32-bit ``h * 31 + c`` string hash of "<template_id>-<YYYY-MM-DD>".
    """
    h = 0
    for ch in f"{template_id}-{shift_date.isoformat()}":
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return -abs(h or 1)


# ---------------------------------------------------------------------------
# Bulk path
# ---------------------------------------------------------------------------

def _missing_rows(
    templates: list[ShiftTemplate],
    start: date,
    end: date,
    existing: set[tuple[int, date]],
) -> list[tuple[int, date, datetime, datetime]]:
    rows = []
    for template in templates:
        for shift_date in occurrences(template.recurrence, start, end):
            if (template.id, shift_date) in existing:
                continue
            starts_at, ends_at = instance_times(template, shift_date)
            rows.append((template.id, shift_date, starts_at, ends_at))
    return rows


def materialize_range(db: sqlite3.Connection, start: date, end: date) -> int:
    """Persist every missing instance of every active template in [start, end].

    Returns the number of rows inserted.  Store errors are logged and
    reported as zero inserts.
    """
    templates = list_templates(db, active_only=True)
    existing = {(i.template_id, i.shift_date) for i in list_instances_between(db, start, end)}
    rows = _missing_rows(templates, start, end, existing)
    if not rows:
        return 0
    try:
        inserted = insert_instances_if_absent(db, rows)
    except sqlite3.Error as e:
        log.warning("Unable to generate shift instances for %s..%s: %s", start, end, e)
        return 0
    log.debug("materialized %d instances for %s..%s", inserted, start, end)
    return inserted


def materialize_week(db: sqlite3.Connection, start: date) -> int:
    return materialize_range(db, start, week_end(start))


# ---------------------------------------------------------------------------
# Lazy path
# ---------------------------------------------------------------------------

def ensure_instance(db: sqlite3.Connection, template_id: int, shift_date: date) -> int:
    """Return the id of the persisted instance for (template, date), creating it if absent.

    Raises ValueError if the template does not exist.  sqlite3 errors
    propagate to the caller.
    """
    existing = find_instance(db, template_id, shift_date)
    if existing is not None:
        return existing.id

    template = get_template(db, template_id)
    if template is None:
        raise ValueError(f"Shift template {template_id} not found")

    starts_at, ends_at = instance_times(template, shift_date)
    insert_instances_if_absent(db, [(template_id, shift_date, starts_at, ends_at)])
    return find_instance(db, template_id, shift_date).id


def resolve_instance_id(
    db: sqlite3.Connection,
    instance_id: Optional[int],
    template_id: Optional[int],
    shift_date: Optional[date],
) -> int:
    """Turn whatever id the caller holds into a positive, persisted instance id.

    Positive ids are returned as-is.  Virtual (negative) or missing ids are
    materialized from ``template_id`` and ``shift_date``.
    """
    if instance_id is not None and instance_id > 0:
        return instance_id
    if template_id is None or shift_date is None:
        raise ValueError("Shift instance not found.")
    return ensure_instance(db, template_id, shift_date)


# ---------------------------------------------------------------------------
# Week view
# ---------------------------------------------------------------------------

def build_week(db: sqlite3.Connection, start: date, materialize: bool = True) -> list[WeekShift]:
    """Return the week's shifts, persisted plus virtual, ordered by start then title."""
    end = week_end(start)
    if materialize:
        materialize_range(db, start, end)

    templates = {t.id: t for t in list_templates(db, active_only=False)}
    shifts = []
    existing = set()
    for instance in list_instances_between(db, start, end):
        template = templates.get(instance.template_id)
        existing.add((instance.template_id, instance.shift_date))
        shifts.append(
            WeekShift(
                instance_id=instance.id,
                template_id=instance.template_id,
                title=template.title if template else "Shift",
                shift_date=instance.shift_date,
                starts_at=instance.starts_at,
                ends_at=instance.ends_at,
                capacity=template.capacity if template else DEFAULT_CAPACITY,
                notes=instance.notes,
            )
        )

    active = [t for t in templates.values() if t.is_active]
    for template_id, shift_date, starts_at, ends_at in _missing_rows(active, start, end, existing):
        template = templates[template_id]
        shifts.append(
            WeekShift(
                instance_id=virtual_instance_id(template_id, shift_date),
                template_id=template_id,
                title=template.title,
                shift_date=shift_date,
                starts_at=starts_at,
                ends_at=ends_at,
                capacity=template.capacity,
                is_virtual=True,
            )
        )

    shifts.sort(key=lambda s: (s.starts_at, s.title))
    return shifts
