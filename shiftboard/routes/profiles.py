"""Profile routes: self-edit, notification opt-in, admin volunteer listing."""

from __future__ import annotations

import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from shiftboard.auth import current_actor, require_admin
from shiftboard.models.profile import (
    NotificationPref,
    Profile,
    ProfileUpdate,
    Role,
    list_profiles,
    set_notification_pref,
    update_profile,
)
from shiftboard.models.push_subscription import PushSubscriptionCreate, upsert_subscription
from shiftboard.rules.pure import check_profile_fields

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class NotificationPrefBody(BaseModel):
    notification_pref: NotificationPref


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


@router.get("/me")
def get_me(actor: Profile = Depends(current_actor)):
    return {**actor.model_dump(), "display_name": actor.display_name}


@router.put("/me")
def put_me(
    body: ProfileUpdate,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    rule = check_profile_fields(body.full_name, body.pronouns, body.phone)
    if not rule.allowed:
        raise HTTPException(status_code=422, detail=rule.reason)
    return update_profile(db, actor.id, body).model_dump()


@router.put("/me/notification-pref")
def put_notification_pref(
    body: NotificationPrefBody,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    return set_notification_pref(db, actor.id, body.notification_pref).model_dump()


@router.post("/me/push-subscriptions", status_code=201)
def post_push_subscription(
    body: PushSubscriptionCreate,
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """Register this device and opt the caller into push."""
    subscription = upsert_subscription(db, actor.id, body)
    set_notification_pref(db, actor.id, "push_and_email")
    return subscription.model_dump()


@router.get("")
def get_profiles(
    role: Optional[Role] = Query(None),
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return [p.model_dump() for p in list_profiles(db, role=role)]
