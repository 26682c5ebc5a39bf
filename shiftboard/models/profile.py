"""Profile domain model: roles, notification preference, CRUD helpers."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class Role(str, Enum):
    REGULAR = "Regular Volunteer"
    LEAD = "Lead"
    ADMIN = "Admin"

    @property
    def can_approve(self) -> bool:
        return self is Role.ADMIN

    @property
    def can_assign_any_slot(self) -> bool:
        return self is Role.ADMIN

    @property
    def can_claim_lead_slot(self) -> bool:
        return self in (Role.LEAD, Role.ADMIN)

    @property
    def assignment_role(self) -> Literal["lead", "regular"]:
        """Role recorded on an assignment this profile holds."""
        return "lead" if self is Role.LEAD else "regular"


NotificationPref = Literal["email_only", "push_and_email"]


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class ProfileCreate(BaseModel):
    full_name: str
    role: Role = Role.REGULAR
    preferred_name: Optional[str] = None
    pronouns: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    notification_pref: NotificationPref = "email_only"


class ProfileUpdate(BaseModel):
    full_name: str
    pronouns: str
    phone: str


class Profile(BaseModel):
    id: int
    role: Role
    full_name: Optional[str]
    preferred_name: Optional[str]
    pronouns: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    notification_pref: NotificationPref
    joined_at: Optional[datetime]

    @property
    def display_name(self) -> str:
        return self.preferred_name or self.full_name or self.email or "A volunteer"


# ---------------------------------------------------------------------------
# CRUD helpers
# ---------------------------------------------------------------------------

def _row_to_profile(row: sqlite3.Row) -> Profile:
    return Profile(
        id=row["id"],
        role=Role(row["role"]),
        full_name=row["full_name"],
        preferred_name=row["preferred_name"],
        pronouns=row["pronouns"],
        phone=row["phone"],
        email=row["email"],
        notification_pref=row["notification_pref"],
        joined_at=row["joined_at"],
    )


def create_profile(db: sqlite3.Connection, data: ProfileCreate) -> Profile:
    """Insert a new profile and return the created record."""
    cursor = db.execute(
        """INSERT INTO profiles
               (role, full_name, preferred_name, pronouns, phone, email, notification_pref)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            data.role.value,
            data.full_name,
            data.preferred_name,
            data.pronouns,
            data.phone,
            data.email,
            data.notification_pref,
        ),
    )
    db.commit()
    return get_profile(db, cursor.lastrowid)


def get_profile(db: sqlite3.Connection, profile_id: int) -> Optional[Profile]:
    """Look up a profile by ID. Returns None if not found."""
    row = db.execute("SELECT * FROM profiles WHERE id = ?", (profile_id,)).fetchone()
    if row is None:
        return None
    return _row_to_profile(row)


def list_profiles(db: sqlite3.Connection, role: Optional[Role] = None) -> list[Profile]:
    """Return all profiles, newest first, optionally filtered by role."""
    if role is None:
        rows = db.execute("SELECT * FROM profiles ORDER BY joined_at DESC, id DESC").fetchall()
    else:
        rows = db.execute(
            "SELECT * FROM profiles WHERE role = ? ORDER BY joined_at DESC, id DESC",
            (role.value,),
        ).fetchall()
    return [_row_to_profile(r) for r in rows]


def list_push_admin_ids(db: sqlite3.Connection) -> list[int]:
    """Return ids of Admins who opted into push notifications."""
    rows = db.execute(
        "SELECT id FROM profiles WHERE role = 'Admin' AND notification_pref = 'push_and_email'"
    ).fetchall()
    return [r["id"] for r in rows]


def update_profile(
    db: sqlite3.Connection, profile_id: int, data: ProfileUpdate
) -> Optional[Profile]:
    """Apply a volunteer's self-edit. Values are stored trimmed."""
    db.execute(
        "UPDATE profiles SET full_name = ?, pronouns = ?, phone = ? WHERE id = ?",
        (data.full_name.strip(), data.pronouns.strip(), data.phone.strip(), profile_id),
    )
    db.commit()
    return get_profile(db, profile_id)


def set_notification_pref(
    db: sqlite3.Connection, profile_id: int, pref: NotificationPref
) -> Optional[Profile]:
    db.execute(
        "UPDATE profiles SET notification_pref = ? WHERE id = ?",
        (pref, profile_id),
    )
    db.commit()
    return get_profile(db, profile_id)
