"""Assignment routes: the request/approve/deny/drop workflow and admin slot edits."""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from shiftboard.auth import current_actor, require_admin
from shiftboard.models.assignment import list_for_volunteer_between
from shiftboard.models.profile import Profile
from shiftboard.routes.results import transition_response
from shiftboard.scheduling import reconciler
from shiftboard.scheduling.materializer import week_end, week_start

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ShiftRef(BaseModel):
    """A shift as the calendar knows it: real id, or virtual id plus template and date."""

    instance_id: Optional[int] = None
    template_id: Optional[int] = None
    shift_date: Optional[date] = None


class JoinRequest(ShiftRef):
    lead_slot: bool = False


class AssignRequest(ShiftRef):
    volunteer_id: int


class ReasonBody(BaseModel):
    reason: Optional[str] = None


class NotesBody(BaseModel):
    notes: Optional[str] = None


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


# ---------------------------------------------------------------------------
# Volunteer actions
# ---------------------------------------------------------------------------

@router.post("/request", status_code=201)
def post_request(
    body: ShiftRef,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    result = reconciler.request_shift(
        db, actor.id, body.instance_id, body.template_id, body.shift_date
    )
    return transition_response(result)


@router.post("/join", status_code=201)
def post_join(
    body: JoinRequest,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    result = reconciler.join_shift(
        db, actor.id, body.instance_id, body.template_id, body.shift_date, lead_slot=body.lead_slot
    )
    return transition_response(result)


@router.post("/{assignment_id}/drop")
def post_drop(
    assignment_id: int,
    body: ReasonBody,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    return transition_response(reconciler.drop_shift(db, actor, assignment_id, body.reason))


@router.get("/mine")
def get_my_shifts(
    offset: int = Query(0),
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """The caller's active and pending shifts in the selected week, by start time."""
    start = week_start(date.today(), offset)
    rows = list_for_volunteer_between(db, actor.id, start, week_end(start))
    return [r.model_dump() for r in rows]


# ---------------------------------------------------------------------------
# Admin actions
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
def post_assign(
    body: AssignRequest,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    result = reconciler.admin_assign(
        db, admin, body.volunteer_id, body.instance_id, body.template_id, body.shift_date
    )
    return transition_response(result)


@router.post("/{assignment_id}/approve")
def post_approve(
    assignment_id: int,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return transition_response(reconciler.approve_assignment(db, assignment_id))


@router.post("/{assignment_id}/deny")
def post_deny(
    assignment_id: int,
    body: ReasonBody,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return transition_response(reconciler.deny_assignment(db, assignment_id, body.reason))


@router.post("/{assignment_id}/remove")
def post_remove(
    assignment_id: int,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return transition_response(reconciler.admin_remove(db, admin, assignment_id))


@router.put("/{assignment_id}/notes")
def put_notes(
    assignment_id: int,
    body: NotesBody,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return transition_response(reconciler.set_notes(db, assignment_id, body.notes))
