"""Shift routes: week board, virtual instance resolution, instance notes."""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from shiftboard.auth import current_actor, require_admin
from shiftboard.models.assignment import list_open_for_instances
from shiftboard.models.instance import get_instance, update_instance_notes
from shiftboard.models.profile import Profile
from shiftboard.scheduling.materializer import (
    build_week,
    resolve_instance_id,
    week_end,
    week_start,
)
from shiftboard.scheduling.reconciler import Slot, build_slots

router = APIRouter(prefix="/api/shifts", tags=["shifts"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ResolveRequest(BaseModel):
    instance_id: Optional[int] = None
    template_id: Optional[int] = None
    shift_date: Optional[date] = None


class InstanceNotes(BaseModel):
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------

def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


def _slot_to_dict(slot: Slot) -> dict:
    assignment = slot.assignment
    return {
        "index": slot.index,
        "label": slot.label,
        "state": slot.state,
        "editable": slot.editable,
        "detail": slot.detail,
        "assignment_id": assignment.id if assignment else None,
        "volunteer_id": assignment.volunteer_id if assignment else None,
        "status": assignment.status if assignment else None,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/week")
def get_week(
    offset: int = Query(0),
    day: Optional[date] = Query(None, description="Any date inside the wanted week"),
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """Return the Monday-first week with six-slot boards for every shift."""
    start = week_start(day or date.today(), offset)
    shifts = build_week(db, start)
    open_by_instance = list_open_for_instances(db, [s.instance_id for s in shifts])

    result = []
    for shift in shifts:
        slots = build_slots(
            open_by_instance.get(shift.instance_id, []),
            viewer_id=actor.id,
            viewer_role=actor.role,
            capacity=shift.capacity,
        )
        result.append({**shift.model_dump(), "slots": [_slot_to_dict(s) for s in slots]})

    return {"week_start": start, "week_end": week_end(start), "shifts": result}


@router.post("/resolve")
def resolve_shift(
    body: ResolveRequest,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """Persist a virtual shift if needed and return its real id."""
    try:
        instance_id = resolve_instance_id(db, body.instance_id, body.template_id, body.shift_date)
    except ValueError:
        raise HTTPException(status_code=404, detail="Shift instance not found.")
    except sqlite3.Error as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"instance_id": instance_id}


@router.put("/{instance_id}/notes")
def put_instance_notes(
    instance_id: int,
    body: InstanceNotes,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    if get_instance(db, instance_id) is None:
        raise HTTPException(status_code=404, detail="Shift instance not found.")
    return update_instance_notes(db, instance_id, body.notes).model_dump()
