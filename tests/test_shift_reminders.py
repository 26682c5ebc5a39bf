from datetime import date, datetime, time, timedelta
from unittest.mock import patch

from apscheduler.schedulers.background import BackgroundScheduler

from shiftboard.db import create_tables, get_db_connection
from shiftboard.models.assignment import upsert_assignment
from shiftboard.models.notification import reminder_sent
from shiftboard.models.profile import ProfileCreate, create_profile
from shiftboard.models.template import ShiftTemplateCreate, create_template
from shiftboard.notifications.reminders import (
    _send_reminders_between,
    run_shift_reminders,
    schedule_shift_reminders,
)
from shiftboard.scheduling.materializer import ensure_instance

SHIFT_START = datetime(2026, 1, 5, 9, 0)


def _seed(db, status="active"):
    volunteer = create_profile(db, ProfileCreate(full_name="Alice"))
    template = create_template(
        db,
        ShiftTemplateCreate(
            title="Front Desk", start_time=time(9, 0), end_time=time(12, 0), byday=["MO"]
        ),
    )
    instance_id = ensure_instance(db, template.id, date(2026, 1, 5))
    upsert_assignment(db, instance_id, volunteer.id, status, "regular")
    return volunteer, instance_id


def test_reminds_active_volunteer_in_window():
    db = get_db_connection(":memory:")
    create_tables(db)
    volunteer, instance_id = _seed(db)

    with patch("shiftboard.notifications.reminders.send_push") as mock_send:
        sent = _send_reminders_between(db, SHIFT_START, SHIFT_START + timedelta(minutes=10))

    assert sent == 1
    mock_send.assert_called_once_with(
        db,
        volunteer.id,
        "Shift reminder",
        "Your Front Desk starts in 2 hours.",
        url="/",
        notification_type="reminder",
        shift_instance_id=instance_id,
    )


def test_pending_and_out_of_window_are_ignored():
    db = get_db_connection(":memory:")
    create_tables(db)
    _seed(db, status="pending")

    with patch("shiftboard.notifications.reminders.send_push") as mock_send:
        assert _send_reminders_between(db, SHIFT_START, SHIFT_START + timedelta(minutes=10)) == 0
        assert mock_send.call_count == 0

    db2 = get_db_connection(":memory:")
    create_tables(db2)
    _seed(db2)
    window_start = SHIFT_START + timedelta(minutes=1)
    with patch("shiftboard.notifications.reminders.send_push") as mock_send:
        assert _send_reminders_between(db2, window_start, window_start + timedelta(minutes=10)) == 0


def test_reminder_sent_once_per_instance():
    db = get_db_connection(":memory:")
    create_tables(db)
    volunteer, instance_id = _seed(db)
    window_end = SHIFT_START + timedelta(minutes=10)

    assert _send_reminders_between(db, SHIFT_START, window_end) == 1
    assert reminder_sent(db, volunteer.id, instance_id) is True
    assert _send_reminders_between(db, SHIFT_START, window_end) == 0


def test_run_shift_reminders_looks_two_hours_ahead(tmp_path, monkeypatch):
    db_path = tmp_path / "reminders.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    db = get_db_connection(str(db_path))
    create_tables(db)
    _seed(db)
    db.close()

    with patch("shiftboard.notifications.reminders.send_push") as mock_send:
        sent = run_shift_reminders(now=SHIFT_START - timedelta(hours=2, minutes=3))

    assert sent == 1
    assert mock_send.call_count == 1


def test_schedule_registers_five_minute_job():
    scheduler = BackgroundScheduler(timezone="UTC")
    schedule_shift_reminders(scheduler)
    assert [job.id for job in scheduler.get_jobs()] == ["shift-reminders-every-5m"]
