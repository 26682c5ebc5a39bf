import sqlite3


def get_db_connection(db_path: str = ":memory:") -> sqlite3.Connection:
    """Return a sqlite3 connection with Row factory for dict-like access."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_tables(conn: sqlite3.Connection) -> None:
    """Create all tables (profiles, templates, instances, assignments, ...).

    This is called by the shared test fixture so every model's tests
    start with a fully-initialised schema.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            role TEXT NOT NULL DEFAULT 'Regular Volunteer'
                CHECK(role IN ('Regular Volunteer', 'Lead', 'Admin')),
            full_name TEXT,
            preferred_name TEXT,
            pronouns TEXT,
            phone TEXT,
            email TEXT,
            notification_pref TEXT NOT NULL DEFAULT 'email_only'
                CHECK(notification_pref IN ('email_only', 'push_and_email')),
            joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS shift_templates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            recurrence_freq TEXT NOT NULL DEFAULT 'WEEKLY',
            recurrence_byday TEXT NOT NULL DEFAULT '',
            recurrence_bymonthday TEXT NOT NULL DEFAULT '',
            capacity INTEGER NOT NULL DEFAULT 6,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS shift_instances (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            template_id INTEGER NOT NULL,
            shift_date TEXT NOT NULL,
            starts_at TEXT NOT NULL,
            ends_at TEXT NOT NULL,
            notes TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (template_id) REFERENCES shift_templates(id),
            UNIQUE(template_id, shift_date)
        );

        CREATE TABLE IF NOT EXISTS recurring_assignments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            volunteer_id INTEGER NOT NULL,
            template_id INTEGER NOT NULL,
            starts_on TEXT NOT NULL,
            ends_on TEXT,
            byday TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (volunteer_id) REFERENCES profiles(id),
            FOREIGN KEY (template_id) REFERENCES shift_templates(id)
        );

        CREATE TABLE IF NOT EXISTS shift_assignments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            shift_instance_id INTEGER NOT NULL,
            volunteer_id INTEGER NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('pending', 'active', 'dropped')),
            assignment_role TEXT NOT NULL DEFAULT 'regular'
                CHECK(assignment_role IN ('lead', 'regular')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            dropped_at TIMESTAMP,
            dropped_reason TEXT,
            notes TEXT,
            recurring_assignment_id INTEGER,
            FOREIGN KEY (shift_instance_id) REFERENCES shift_instances(id) ON DELETE CASCADE,
            FOREIGN KEY (volunteer_id) REFERENCES profiles(id),
            FOREIGN KEY (recurring_assignment_id) REFERENCES recurring_assignments(id) ON DELETE SET NULL,
            UNIQUE(shift_instance_id, volunteer_id)
        );

        CREATE TABLE IF NOT EXISTS push_subscriptions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            endpoint TEXT NOT NULL,
            p256dh TEXT NOT NULL,
            auth TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE,
            UNIQUE(user_id, endpoint)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            type TEXT NOT NULL CHECK(type IN ('push', 'admin_push', 'reminder')),
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            shift_instance_id INTEGER,
            sent_count INTEGER NOT NULL DEFAULT 0,
            failed_count INTEGER NOT NULL DEFAULT 0,
            skipped BOOLEAN NOT NULL DEFAULT FALSE,
            error TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES profiles(id) ON DELETE CASCADE
        );
        """
    )
