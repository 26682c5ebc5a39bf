from __future__ import annotations

import sqlite3
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from shiftboard.models.profile import Profile, get_profile


def get_actor_context(db: sqlite3.Connection, user_id: Optional[int]) -> Profile | None:
    """Look up the caller's profile.

    The identity provider authenticates the user and forwards the profile
    id; an unknown id means the session does not map to a profile.
    """
    if user_id is None:
        return None
    return get_profile(db, user_id)


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


def current_actor(
    db: sqlite3.Connection = Depends(_get_db),
    x_user_id: Optional[int] = Header(default=None),
) -> Profile:
    actor = get_actor_context(db, x_user_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return actor


def require_admin(actor: Profile = Depends(current_actor)) -> Profile:
    if not actor.role.can_approve:
        raise HTTPException(status_code=403, detail="Admins only")
    return actor
