"""Shift template routes: list, create, metadata update."""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from shiftboard.auth import current_actor, require_admin
from shiftboard.models.profile import Profile
from shiftboard.models.template import (
    ShiftTemplateCreate,
    ShiftTemplateUpdate,
    create_template,
    list_templates,
    template_to_dict,
    update_template_metadata,
)

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _get_db(request: Request) -> sqlite3.Connection:
    return request.app.state.db


@router.get("")
def get_templates(
    include_inactive: bool = Query(False),
    db: sqlite3.Connection = Depends(_get_db),
    actor: Profile = Depends(current_actor),
):
    """Active templates by default; admins may ask for inactive ones too."""
    active_only = not (include_inactive and actor.role.can_approve)
    return [template_to_dict(t) for t in list_templates(db, active_only=active_only)]


@router.post("", status_code=201)
def post_template(
    body: ShiftTemplateCreate,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    return template_to_dict(create_template(db, body))


@router.patch("/{template_id}")
def patch_template(
    template_id: int,
    body: ShiftTemplateUpdate,
    db: sqlite3.Connection = Depends(_get_db),
    admin: Profile = Depends(require_admin),
):
    template = update_template_metadata(db, template_id, body)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template_to_dict(template)
