"""Assignment state machine and capacity-slot rendering.

One volunteer has at most one row per shift instance.  Every transition
that creates or reopens the relationship goes through the
(shift_instance_id, volunteer_id) upsert, so a repeated submission
overwrites instead of duplicating.

Transitions return a ``TransitionResult`` instead of raising.  Validation
failures happen before any write.  Store errors carry the driver message.
Notification failures never undo a committed change; they come back as
``warning`` on an otherwise successful result.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Literal, Optional

from shiftboard.models.assignment import (
    AssignmentDetail,
    ShiftAssignment,
    bulk_upsert_assignments,
    delete_pattern_assignments,
    find_assignment,
    get_assignment,
    get_assignment_detail,
    list_open_for_instances,
    mark_active,
    mark_dropped,
    set_assignment_notes,
    upsert_assignment,
)
from shiftboard.models.instance import (
    get_instance,
    insert_instances_if_absent,
    list_instances_between,
)
from shiftboard.models.profile import Profile, Role, get_profile
from shiftboard.models.recurring import (
    RecurringAssignment,
    RecurringAssignmentCreate,
    create_recurring,
    delete_recurring,
    get_recurring,
    list_recurring_by_volunteer,
)
from shiftboard.models.template import DEFAULT_CAPACITY, get_template
from shiftboard.notifications.push import push_warning, send_admin_push, send_push
from shiftboard.rules.pure import (
    check_can_join,
    check_not_already_on_shift,
    check_open_slot,
    check_reason,
    check_recurring_form,
    check_status,
)
from shiftboard.scheduling.materializer import instance_times, resolve_instance_id
from shiftboard.scheduling.recurrence import (
    Recurrence,
    add_months,
    day_code,
    normalize_byday,
    occurrences,
)

log = logging.getLogger("shiftboard.reconciler")

ErrorKind = Literal["validation", "not_found", "conflict", "store"]

REMOVED_BY_ADMIN = "Removed by admin"
RECURRING_WINDOW_MONTHS = 12


@dataclass
class TransitionResult:
    ok: bool
    assignment: Optional[ShiftAssignment] = None
    message: str = ""
    warning: Optional[str] = None
    error: Optional[ErrorKind] = None
    count: int = 0

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "TransitionResult":
        return cls(ok=False, error=error, message=message)


def _store_errors(func):
    """Turn store exceptions raised inside a transition into a failed result."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> TransitionResult:
        try:
            return func(*args, **kwargs)
        except sqlite3.Error as e:
            log.warning("%s failed: %s", func.__name__, e)
            return TransitionResult.fail("store", str(e))

    return wrapper


# ---------------------------------------------------------------------------
# Notification side effects
# ---------------------------------------------------------------------------

def _notify_volunteer(
    db: sqlite3.Connection,
    user_id: int,
    title: str,
    body: str,
    shift_instance_id: Optional[int] = None,
) -> Optional[str]:
    try:
        result = send_push(db, user_id, title, body, shift_instance_id=shift_instance_id)
    except Exception as exc:
        log.warning("push to user %s failed: %s", user_id, exc)
        return str(exc)
    return push_warning(result)


def _notify_admins(db: sqlite3.Connection, title: str, body: str) -> Optional[str]:
    try:
        send_admin_push(db, title, body)
    except Exception as exc:
        log.warning("admin push %r failed: %s", title, exc)
        return str(exc)
    return None


def _first_warning(*warnings: Optional[str]) -> Optional[str]:
    for warning in warnings:
        if warning:
            return warning
    return None


def _format_time(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def describe_shift(detail: AssignmentDetail) -> str:
    """'Monday, Jan 5, 2026, 9:00 AM – 12:00 PM, Front Desk'"""
    start = detail.starts_at
    day = f"{start.strftime('%A, %b')} {start.day}, {start.year}"
    times = f"{_format_time(detail.starts_at)} – {_format_time(detail.ends_at)}"
    return f"{day}, {times}, {detail.template_title}"


# ---------------------------------------------------------------------------
# Shared lookups
# ---------------------------------------------------------------------------

def _resolve_instance(
    db: sqlite3.Connection,
    instance_id: Optional[int],
    template_id: Optional[int],
    shift_date: Optional[date],
):
    """Return (instance, None) or (None, failed result)."""
    try:
        resolved = resolve_instance_id(db, instance_id, template_id, shift_date)
    except ValueError:
        return None, TransitionResult.fail("not_found", "Shift instance not found.")
    instance = get_instance(db, resolved)
    if instance is None:
        return None, TransitionResult.fail("not_found", "Shift instance not found.")
    return instance, None


def _capacity_for(db: sqlite3.Connection, template_id: int) -> int:
    template = get_template(db, template_id)
    return template.capacity if template else DEFAULT_CAPACITY


def _check_slot_for(db: sqlite3.Connection, instance, volunteer: Profile):
    """Can ``volunteer`` take a free slot on ``instance``?  Their own row is not counted."""
    others = [
        a
        for a in list_open_for_instances(db, [instance.id]).get(instance.id, [])
        if a.volunteer_id != volunteer.id
    ]
    return check_open_slot(
        len(others),
        _capacity_for(db, instance.template_id),
        lead_covered=any(_covers_lead(a) for a in others),
        can_claim_lead_slot=volunteer.role.can_claim_lead_slot,
    )


# ---------------------------------------------------------------------------
# Volunteer-initiated transitions
# ---------------------------------------------------------------------------

@_store_errors
def request_shift(
    db: sqlite3.Connection,
    volunteer_id: int,
    instance_id: Optional[int],
    template_id: Optional[int] = None,
    shift_date: Optional[date] = None,
) -> TransitionResult:
    """Volunteer asks to join a shift.  The row starts out pending."""
    volunteer = get_profile(db, volunteer_id)
    if volunteer is None:
        return TransitionResult.fail("not_found", "Volunteer not found.")
    instance, failure = _resolve_instance(db, instance_id, template_id, shift_date)
    if failure:
        return failure

    existing = find_assignment(db, instance.id, volunteer.id)
    rule = check_not_already_on_shift(existing.status if existing else None)
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)
    rule = _check_slot_for(db, instance, volunteer)
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    assignment = upsert_assignment(
        db, instance.id, volunteer.id, "pending", volunteer.role.assignment_role
    )
    log.info("volunteer %s requested instance %s", volunteer.id, instance.id)

    warning = _notify_admins(
        db, "Shift request", f"{volunteer.display_name} requested to join a shift."
    )
    return TransitionResult(ok=True, assignment=assignment, message="Request sent.", warning=warning)


@_store_errors
def join_shift(
    db: sqlite3.Connection,
    volunteer_id: int,
    instance_id: Optional[int],
    template_id: Optional[int] = None,
    shift_date: Optional[date] = None,
    lead_slot: bool = False,
) -> TransitionResult:
    """Lead or Admin takes a slot directly, skipping approval."""
    volunteer = get_profile(db, volunteer_id)
    if volunteer is None:
        return TransitionResult.fail("not_found", "Volunteer not found.")
    rule = check_can_join(
        lead_slot, volunteer.role.can_claim_lead_slot, volunteer.role.can_assign_any_slot
    )
    if not rule.allowed:
        return TransitionResult.fail("validation", rule.reason)

    instance, failure = _resolve_instance(db, instance_id, template_id, shift_date)
    if failure:
        return failure

    existing = find_assignment(db, instance.id, volunteer.id)
    rule = check_not_already_on_shift(existing.status if existing else None)
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)
    rule = _check_slot_for(db, instance, volunteer)
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    assignment = upsert_assignment(
        db, instance.id, volunteer.id, "active", volunteer.role.assignment_role
    )
    log.info("volunteer %s joined instance %s", volunteer.id, instance.id)
    return TransitionResult(ok=True, assignment=assignment, message="You're on the shift.")


@_store_errors
def drop_shift(
    db: sqlite3.Connection,
    actor: Profile,
    assignment_id: int,
    reason: Optional[str] = None,
) -> TransitionResult:
    """Drop one's own assignment.

    Non-admins must give a reason.  An Admin dropping their own slot is
    recorded as "Removed by admin".
    """
    is_admin = actor.role is Role.ADMIN
    if not is_admin:
        rule = check_reason(reason, kind="drop")
        if not rule.allowed:
            return TransitionResult.fail("validation", rule.reason)

    detail = get_assignment_detail(db, assignment_id)
    if detail is None:
        return TransitionResult.fail("not_found", "Assignment not found.")
    if detail.volunteer_id != actor.id:
        return TransitionResult.fail("validation", "You can only drop your own shifts.")
    rule = check_status(detail.status, ("active", "pending"), "drop")
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    reason_text = (reason or "").strip()
    assignment = mark_dropped(db, assignment_id, REMOVED_BY_ADMIN if is_admin else reason_text)
    log.info("volunteer %s dropped assignment %s", actor.id, assignment_id)

    if reason_text:
        body = f"{actor.display_name} dropped a shift. Reason: {reason_text}"
    else:
        body = f"{actor.display_name} dropped a shift."
    warning = _notify_admins(db, "Shift dropped", body)
    return TransitionResult(ok=True, assignment=assignment, message="Shift dropped.", warning=warning)


# ---------------------------------------------------------------------------
# Admin transitions
# ---------------------------------------------------------------------------

@_store_errors
def approve_assignment(db: sqlite3.Connection, assignment_id: int) -> TransitionResult:
    detail = get_assignment_detail(db, assignment_id)
    if detail is None:
        return TransitionResult.fail("not_found", "Assignment not found.")
    rule = check_status(detail.status, ("pending",), "approve")
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    assignment = mark_active(db, assignment_id)
    log.info("assignment %s approved", assignment_id)

    warning = _notify_volunteer(
        db,
        detail.volunteer_id,
        "Shift approved",
        f"Your request for {detail.template_title} was approved.",
        shift_instance_id=detail.shift_instance_id,
    )
    return TransitionResult(ok=True, assignment=assignment, message="Approved.", warning=warning)


@_store_errors
def deny_assignment(
    db: sqlite3.Connection, assignment_id: int, reason: Optional[str]
) -> TransitionResult:
    rule = check_reason(reason, kind="deny")
    if not rule.allowed:
        return TransitionResult.fail("validation", rule.reason)

    detail = get_assignment_detail(db, assignment_id)
    if detail is None:
        return TransitionResult.fail("not_found", "Assignment not found.")
    rule = check_status(detail.status, ("pending",), "deny")
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    reason_text = reason.strip()
    assignment = mark_dropped(db, assignment_id, reason_text)
    log.info("assignment %s denied", assignment_id)

    warning = _notify_volunteer(
        db,
        detail.volunteer_id,
        "Shift denied",
        f"Your request for {detail.template_title} was denied. Reason: {reason_text}",
        shift_instance_id=detail.shift_instance_id,
    )
    return TransitionResult(ok=True, assignment=assignment, message="Denied.", warning=warning)


@_store_errors
def admin_assign(
    db: sqlite3.Connection,
    admin: Profile,
    volunteer_id: int,
    instance_id: Optional[int],
    template_id: Optional[int] = None,
    shift_date: Optional[date] = None,
) -> TransitionResult:
    """Put a volunteer straight onto a shift as active."""
    volunteer = get_profile(db, volunteer_id)
    if volunteer is None:
        return TransitionResult.fail("not_found", "Volunteer not found.")
    instance, failure = _resolve_instance(db, instance_id, template_id, shift_date)
    if failure:
        return failure

    rule = _check_slot_for(db, instance, volunteer)
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    assignment = upsert_assignment(
        db, instance.id, volunteer.id, "active", volunteer.role.assignment_role
    )
    log.info("admin %s assigned volunteer %s to instance %s", admin.id, volunteer.id, instance.id)

    detail = get_assignment_detail(db, assignment.id)
    warning = _notify_volunteer(
        db,
        volunteer.id,
        "Shift added",
        f"{admin.display_name} added you to {describe_shift(detail)}.",
        shift_instance_id=instance.id,
    )
    return TransitionResult(ok=True, assignment=assignment, message="Volunteer added.", warning=warning)


@_store_errors
def admin_remove(db: sqlite3.Connection, admin: Profile, assignment_id: int) -> TransitionResult:
    detail = get_assignment_detail(db, assignment_id)
    if detail is None:
        return TransitionResult.fail("not_found", "Assignment not found.")
    rule = check_status(detail.status, ("active", "pending"), "remove")
    if not rule.allowed:
        return TransitionResult.fail("conflict", rule.reason)

    assignment = mark_dropped(db, assignment_id, REMOVED_BY_ADMIN)
    log.info("admin %s removed assignment %s", admin.id, assignment_id)

    volunteer_name = detail.volunteer_name or "A volunteer"
    admin_warning = _notify_admins(
        db, "Shift dropped", f"{admin.display_name} removed {volunteer_name} from a shift."
    )
    volunteer_warning = _notify_volunteer(
        db,
        detail.volunteer_id,
        "Shift removed",
        f"{admin.display_name} removed you from {describe_shift(detail)}.",
        shift_instance_id=detail.shift_instance_id,
    )
    return TransitionResult(
        ok=True,
        assignment=assignment,
        message="Volunteer removed.",
        warning=_first_warning(volunteer_warning, admin_warning),
    )


@_store_errors
def set_notes(
    db: sqlite3.Connection, assignment_id: int, notes: Optional[str]
) -> TransitionResult:
    if get_assignment(db, assignment_id) is None:
        return TransitionResult.fail("not_found", "Assignment not found.")
    assignment = set_assignment_notes(db, assignment_id, notes)
    return TransitionResult(ok=True, assignment=assignment, message="Notes saved.")


# ---------------------------------------------------------------------------
# Recurring patterns
# ---------------------------------------------------------------------------

def pattern_window(starts_on: date, ends_on: Optional[date]) -> tuple[date, date]:
    """Inclusive date range a pattern projects over: at most twelve months."""
    horizon = add_months(starts_on, RECURRING_WINDOW_MONTHS)
    if ends_on is None or ends_on > horizon:
        return starts_on, horizon
    return starts_on, ends_on


def _pattern_dates(
    starts_on: date, ends_on: Optional[date], byday: Iterable[str], recurrence: Recurrence
) -> list[date]:
    """Dates in the pattern window that the template produces and the pattern selects."""
    days = set(byday)
    start, end = pattern_window(starts_on, ends_on)
    return [d for d in occurrences(recurrence, start, end) if day_code(d) in days]


def _pattern_instance_ids(
    db: sqlite3.Connection,
    pattern: RecurringAssignment,
    recurrence: Optional[Recurrence] = None,
) -> list[int]:
    start, end = pattern_window(pattern.starts_on, pattern.ends_on)
    days = set(pattern.byday)
    return [
        instance.id
        for instance in list_instances_between(db, start, end, template_id=pattern.template_id)
        if day_code(instance.shift_date) in days
        and (recurrence is None or recurrence.includes(instance.shift_date))
    ]


@_store_errors
def save_recurring_pattern(
    db: sqlite3.Connection,
    admin: Profile,
    volunteer_id: int,
    template_id: Optional[int],
    starts_on: Optional[date],
    ends_on: Optional[date],
    byday: Optional[list[str]],
) -> TransitionResult:
    """Store a standing pattern and put the volunteer on every matching shift.

    Instances for each matching date in the window are materialized first,
    then all assignments are upserted as active in one batch.
    """
    rule = check_recurring_form(template_id, starts_on, ends_on, byday or [])
    if not rule.allowed:
        return TransitionResult.fail("validation", rule.reason)
    try:
        days = normalize_byday(byday)
    except ValueError as e:
        return TransitionResult.fail("validation", str(e))

    volunteer = get_profile(db, volunteer_id)
    if volunteer is None:
        return TransitionResult.fail("not_found", "Volunteer not found.")
    template = get_template(db, template_id)
    if template is None:
        return TransitionResult.fail("not_found", "Shift template not found.")
    if not template.is_active:
        return TransitionResult.fail("validation", "Shift template is inactive.")

    pattern = create_recurring(
        db,
        RecurringAssignmentCreate(
            volunteer_id=volunteer.id,
            template_id=template.id,
            starts_on=starts_on,
            ends_on=ends_on,
            byday=list(days),
        ),
    )

    # The pattern row is already committed; later store errors must say so.
    try:
        rows = []
        for shift_date in _pattern_dates(starts_on, ends_on, days, template.recurrence):
            starts_at, ends_at = instance_times(template, shift_date)
            rows.append((template.id, shift_date, starts_at, ends_at))
        insert_instances_if_absent(db, rows)

        instance_ids = _pattern_instance_ids(db, pattern, template.recurrence)
        if not instance_ids:
            return TransitionResult(
                ok=True,
                message="Recurring pattern saved. No matching shift dates were found yet.",
            )

        count = bulk_upsert_assignments(
            db, instance_ids, volunteer.id, "active", volunteer.role.assignment_role, pattern.id
        )
    except sqlite3.Error as e:
        log.warning("recurring pattern %s saved but assignments failed: %s", pattern.id, e)
        return TransitionResult.fail(
            "store", f"Recurring shifts saved, but assignment update failed: {e}"
        )
    log.info(
        "recurring pattern %s assigned volunteer %s to %d shifts", pattern.id, volunteer.id, count
    )

    warning = _notify_volunteer(
        db,
        volunteer.id,
        "Recurring shifts added",
        f"{admin.display_name} added recurring shifts to your schedule.",
    )
    return TransitionResult(
        ok=True, message="Recurring shifts saved.", warning=warning, count=count
    )


@_store_errors
def delete_recurring_pattern(db: sqlite3.Connection, recurring_id: int) -> TransitionResult:
    """Remove a pattern and the assignments it produced in its window.

    Rows the volunteer holds on the same instances by other means are kept.
    """
    pattern = get_recurring(db, recurring_id)
    if pattern is None:
        return TransitionResult.fail("not_found", "Recurring shift not found.")

    was_last = len(list_recurring_by_volunteer(db, pattern.volunteer_id)) == 1
    removed = delete_pattern_assignments(
        db, pattern.id, pattern.volunteer_id, _pattern_instance_ids(db, pattern)
    )
    delete_recurring(db, pattern.id)
    log.info("recurring pattern %s deleted with %d assignments", pattern.id, removed)

    warning = None
    if was_last:
        warning = _notify_volunteer(
            db,
            pattern.volunteer_id,
            "Recurring shifts removed",
            "Your recurring shifts were deleted.",
        )
    return TransitionResult(
        ok=True, message="Recurring shift deleted.", warning=warning, count=removed
    )


# ---------------------------------------------------------------------------
# Slot board
# ---------------------------------------------------------------------------

def _rank(assignment: AssignmentDetail) -> int:
    if assignment.status == "pending":
        return 3
    if assignment.volunteer_role is Role.ADMIN:
        return 0
    if assignment.volunteer_role is Role.LEAD or assignment.assignment_role == "lead":
        return 1
    return 2


def rank_assignments(assignments: Iterable[AssignmentDetail]) -> list[AssignmentDetail]:
    """Display order: admin, lead, regular, then pending; oldest first within a rank."""
    return sorted(assignments, key=lambda a: (_rank(a), a.created_at, a.id))


def _covers_lead(assignment: AssignmentDetail) -> bool:
    return assignment.assignment_role == "lead" or assignment.volunteer_role in (
        Role.LEAD,
        Role.ADMIN,
    )


@dataclass
class Slot:
    index: int
    label: str
    state: str
    editable: bool
    assignment: Optional[AssignmentDetail] = None
    detail: Optional[str] = None


def _slot_state(index: int, assignment: Optional[AssignmentDetail]) -> str:
    if assignment is None:
        return "needs-lead" if index == 0 else "none"
    if assignment.status == "pending":
        return "pending"
    if assignment.volunteer_role is Role.ADMIN:
        return "admin"
    if assignment.assignment_role == "lead":
        return "lead"
    return "assigned"


def _slot_label(index: int, assignment: Optional[AssignmentDetail]) -> str:
    if assignment is None:
        return "Needs Lead Coverage" if index == 0 else "No Volunteer Assigned"
    if assignment.status == "pending":
        return "Pending"
    return assignment.volunteer_name or "No Volunteer Assigned"


def _slot_detail(assignment: Optional[AssignmentDetail]) -> Optional[str]:
    if assignment is None or assignment.status == "pending":
        return None
    if assignment.notes:
        return assignment.notes
    if assignment.assignment_role == "lead" or assignment.volunteer_role is Role.ADMIN:
        return assignment.volunteer_phone
    return None


def build_slots(
    assignments: Iterable[AssignmentDetail],
    viewer_id: int,
    viewer_role: Role,
    capacity: int = DEFAULT_CAPACITY,
) -> list[Slot]:
    """Lay out an instance's open assignments over its capacity slots.

    Slot 0 holds the first lead-capable assignment and is reserved for
    lead coverage when empty.  The rest fill slots 1.. in display order;
    anything past capacity is not shown.
    """
    ordered = rank_assignments(a for a in assignments if a.status in ("active", "pending"))
    lead = next((a for a in ordered if _covers_lead(a)), None)
    rest = [a for a in ordered if a is not lead]

    slots = []
    for index in range(capacity):
        assignment = lead if index == 0 else (rest[index - 1] if index - 1 < len(rest) else None)
        if assignment is not None:
            editable = viewer_role is Role.ADMIN or assignment.volunteer_id == viewer_id
        elif index == 0:
            editable = viewer_role.can_claim_lead_slot
        else:
            editable = True
        slots.append(
            Slot(
                index=index,
                label=_slot_label(index, assignment),
                state=_slot_state(index, assignment),
                editable=editable,
                assignment=assignment,
                detail=_slot_detail(assignment),
            )
        )
    return slots
