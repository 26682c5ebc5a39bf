"""Pure validation rule functions: no DB, no shiftboard.models imports."""

from __future__ import annotations

from collections import namedtuple
from datetime import date
from typing import Iterable, Optional


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

RuleResult = namedtuple("RuleResult", ["allowed", "reason"])

OK = RuleResult(True, "")


# ---------------------------------------------------------------------------
# Transition preconditions
# ---------------------------------------------------------------------------

def check_reason(reason: Optional[str], kind: str = "drop") -> RuleResult:
    """A deny or self-drop needs a non-blank reason."""
    if not (reason or "").strip():
        noun = "denial" if kind == "deny" else "drop"
        return RuleResult(False, f"Please add a {noun} reason.")
    return OK


def check_not_already_on_shift(current_status: Optional[str]) -> RuleResult:
    """A volunteer may only open one request per instance."""
    if current_status in ("active", "pending"):
        return RuleResult(False, "You are already on this shift!")
    return OK


def check_status(current_status: str, expected: Iterable[str], action: str) -> RuleResult:
    """Reject a transition whose source status is not one of ``expected``."""
    expected = tuple(expected)
    if current_status not in expected:
        return RuleResult(False, f"Cannot {action} an assignment that is {current_status}.")
    return OK


def check_capacity(open_count: int, capacity: int) -> RuleResult:
    """Check that an instance still has an unfilled slot."""
    if open_count >= capacity:
        return RuleResult(False, f"Shift is full ({open_count}/{capacity})")
    return OK


def check_open_slot(
    open_count: int, capacity: int, lead_covered: bool, can_claim_lead_slot: bool
) -> RuleResult:
    """Check that a slot the volunteer may hold is still free.

    Slot 0 is reserved for lead coverage, so a volunteer who cannot claim
    it needs one of the other ``capacity - 1`` slots.
    """
    rule = check_capacity(open_count, capacity)
    if not rule.allowed:
        return rule
    if not can_claim_lead_slot and not lead_covered and open_count >= capacity - 1:
        return RuleResult(False, "Only the lead slot is open on this shift.")
    return OK


def check_lead_slot(can_claim_lead_slot: bool) -> RuleResult:
    """Slot 0 may only be claimed by a Lead or Admin."""
    if not can_claim_lead_slot:
        return RuleResult(False, "Only leads and admins can take the lead slot.")
    return OK


def check_can_join(lead_slot: bool, can_claim_lead_slot: bool, can_assign_any_slot: bool) -> RuleResult:
    """Joining skips approval: Admins anywhere, Leads only on the lead slot."""
    if can_assign_any_slot:
        return OK
    if lead_slot:
        return check_lead_slot(can_claim_lead_slot)
    return RuleResult(False, "Request this shift instead; an admin will approve it.")


# ---------------------------------------------------------------------------
# Recurring pattern form
# ---------------------------------------------------------------------------

def check_recurring_form(
    template_id: Optional[int],
    starts_on: Optional[date],
    ends_on: Optional[date],
    byday: Iterable[str],
) -> RuleResult:
    """Validate a recurring-pattern submission before anything is written."""
    if not template_id:
        return RuleResult(False, "Select a shift template.")
    if starts_on is None:
        return RuleResult(False, "Start date is required.")
    if not list(byday):
        return RuleResult(False, "Select at least one weekday.")
    if ends_on is not None and ends_on < starts_on:
        return RuleResult(False, "End date must be on or after the start date.")
    return OK


# ---------------------------------------------------------------------------
# Profile self-edit
# ---------------------------------------------------------------------------

def check_profile_fields(full_name: str, pronouns: str, phone: str) -> RuleResult:
    """Full name, pronouns and phone are all required on self-edit."""
    if not full_name.strip() or not pronouns.strip() or not phone.strip():
        return RuleResult(False, "Full name, pronouns, and phone are required.")
    return OK
