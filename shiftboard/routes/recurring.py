"""Recurring pattern routes (admin)."""

from __future__ import annotations

import sqlite3
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from shiftboard.auth import require_admin
from shiftboard.models.profile import Profile
from shiftboard.models.recurring import list_recurring_by_volunteer
from shiftboard.models.template import get_template
from shiftboard.routes.results import transition_response
from shiftboard.scheduling.reconciler import delete_recurring_pattern, save_recurring_pattern
from shiftboard.scheduling.recurrence import describe_days

router = APIRouter(prefix="/api/recurring", tags=["recurring"])


class RecurringForm(BaseModel):
    volunteer_id: int
    template_id: Optional[int] = None
    starts_on: Optional[date] = None
    ends_on: Optional[date] = None
    byday: list[str] = []


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


@router.get("")
def get_patterns(
    volunteer_id: int = Query(...),
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    patterns = []
    for pattern in list_recurring_by_volunteer(db, volunteer_id):
        template = get_template(db, pattern.template_id)
        patterns.append(
            {
                **pattern.model_dump(),
                "template_title": template.title if template else None,
                "repeats": describe_days(pattern.byday),
            }
        )
    return patterns


@router.post("", status_code=201)
def post_pattern(
    body: RecurringForm,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    result = save_recurring_pattern(
        db, admin, body.volunteer_id, body.template_id, body.starts_on, body.ends_on, body.byday
    )
    return transition_response(result)


@router.delete("/{recurring_id}")
def delete_pattern(
    recurring_id: int,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return transition_response(delete_recurring_pattern(db, recurring_id))
