"""Notification routes: assignment feed and the caller's push log."""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends, Request

from shiftboard.auth import current_actor
from shiftboard.models.assignment import list_admin_feed, list_volunteer_feed
from shiftboard.models.notification import list_notifications_by_user
from shiftboard.models.profile import Profile

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


@router.get("/feed")
def get_feed(
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """Admins see pending requests and drops; volunteers see their own changes."""
    if actor.role.can_approve:
        rows = list_admin_feed(db)
    else:
        rows = list_volunteer_feed(db, actor.id)
    return [r.model_dump() for r in rows]


@router.get("")
def get_notifications(
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    return [n.model_dump() for n in list_notifications_by_user(db, actor.id)]
