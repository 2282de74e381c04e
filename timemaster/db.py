import logging
import sqlite3

from flask import current_app, g
from werkzeug.security import generate_password_hash

from .errors import NotFound

logger = logging.getLogger(__name__)

DAYS = ['MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY']

# ORDER BY fragment that sorts time slots in week order instead of alphabetically.
DAY_ORDER_SQL = 'CASE {col} ' + ' '.join(
    f"WHEN '{day}' THEN {i}" for i, day in enumerate(DAYS)
) + ' END'

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        name TEXT,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'STUDENT' CHECK (role IN ('ADMIN', 'TEACHER', 'STUDENT')),
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS rooms (
        room_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        capacity INTEGER NOT NULL CHECK (capacity > 0),
        room_type TEXT NOT NULL DEFAULT 'CLASSROOM',
        building TEXT,
        floor INTEGER,
        is_available INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS subjects (
        subject_id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        credits INTEGER NOT NULL DEFAULT 3,
        subject_type TEXT NOT NULL DEFAULT 'THEORY'
    );
    CREATE TABLE IF NOT EXISTS teachers (
        teacher_id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        phone TEXT,
        department TEXT,
        designation TEXT,
        is_available INTEGER NOT NULL DEFAULT 1,
        user_id INTEGER UNIQUE REFERENCES users(user_id) ON DELETE SET NULL
    );
    CREATE TABLE IF NOT EXISTS teacher_subjects (
        teacher_id INTEGER NOT NULL REFERENCES teachers(teacher_id) ON DELETE CASCADE,
        subject_id INTEGER NOT NULL REFERENCES subjects(subject_id) ON DELETE CASCADE,
        PRIMARY KEY (teacher_id, subject_id)
    );
    CREATE TABLE IF NOT EXISTS classes (
        class_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        program TEXT NOT NULL,
        year INTEGER NOT NULL,
        division TEXT,
        semester INTEGER NOT NULL,
        strength INTEGER NOT NULL DEFAULT 60,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS students (
        student_id INTEGER PRIMARY KEY AUTOINCREMENT,
        roll_number TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        phone TEXT,
        class_id INTEGER NOT NULL REFERENCES classes(class_id) ON DELETE RESTRICT,
        user_id INTEGER UNIQUE REFERENCES users(user_id) ON DELETE SET NULL
    );
    CREATE TABLE IF NOT EXISTS time_slots (
        time_slot_id INTEGER PRIMARY KEY AUTOINCREMENT,
        day TEXT NOT NULL,
        period INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        UNIQUE (day, period),
        UNIQUE (day, start_time, end_time)
    );
    CREATE TABLE IF NOT EXISTS timetable_entries (
        entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
        class_id INTEGER NOT NULL REFERENCES classes(class_id) ON DELETE RESTRICT,
        subject_id INTEGER NOT NULL REFERENCES subjects(subject_id) ON DELETE RESTRICT,
        teacher_id INTEGER NOT NULL REFERENCES teachers(teacher_id) ON DELETE RESTRICT,
        room_id INTEGER NOT NULL REFERENCES rooms(room_id) ON DELETE RESTRICT,
        time_slot_id INTEGER NOT NULL REFERENCES time_slots(time_slot_id) ON DELETE RESTRICT,
        UNIQUE (class_id, time_slot_id),
        UNIQUE (teacher_id, time_slot_id),
        UNIQUE (room_id, time_slot_id)
    );
'''


# --- CONNECTION HELPERS ---
def get_db():
    db = getattr(g, '_database', None)
    if db is None:
        db = sqlite3.connect(current_app.config['DATABASE'])
        db.row_factory = sqlite3.Row
        db.execute('PRAGMA foreign_keys = ON')
        g._database = db
    return db


def close_connection(exception):
    db = g.pop('_database', None)
    if db is not None:
        db.close()


def init_db():
    """Creates the schema and the default admin account. Needs an app context."""
    db = get_db()
    db.executescript(SCHEMA)

    admin_email = current_app.config['ADMIN_EMAIL']
    if db.execute("SELECT 1 FROM users WHERE role = 'ADMIN'").fetchone() is None:
        db.execute(
            "INSERT INTO users (email, name, password_hash, role) VALUES (?, ?, ?, 'ADMIN')",
            (admin_email, 'Administrator', generate_password_hash(current_app.config['ADMIN_PASSWORD'])),
        )
        logger.info(f"Created default admin account {admin_email}")
    db.commit()


# --- QUERY HELPERS ---
def row_to_dict(row, bool_fields=('is_available',)):
    if row is None:
        return None
    data = dict(row)
    for field in bool_fields:
        if field in data and data[field] is not None:
            data[field] = bool(data[field])
    return data


def rows_to_dicts(rows):
    return [row_to_dict(r) for r in rows]


def build_where(filters):
    """Turns a list of (sql_fragment, value) pairs into a WHERE clause and params.

    Pairs whose value is None are skipped.
    """
    clauses, params = [], []
    for fragment, value in filters:
        if value is None:
            continue
        clauses.append(fragment)
        params.extend(value if isinstance(value, (list, tuple)) else [value])
    where = ' WHERE ' + ' AND '.join(clauses) if clauses else ''
    return where, params


def update_row(db, table, key_column, key, data):
    if not data:
        return
    assignments = ', '.join(f'{column} = ?' for column in data)
    db.execute(
        f'UPDATE {table} SET {assignments} WHERE {key_column} = ?',
        list(data.values()) + [key],
    )


def get_or_404(db, table, key_column, key, label):
    row = db.execute(f'SELECT * FROM {table} WHERE {key_column} = ?', (key,)).fetchone()
    if row is None:
        raise NotFound(f'{label} not found')
    return row


def count_rows(db, table, column, key):
    return db.execute(f'SELECT COUNT(*) FROM {table} WHERE {column} = ?', (key,)).fetchone()[0]


def parse_bool_arg(value):
    """Query-string flag as a SQLite boolean: None when absent, 1 only for "true"."""
    if value is None:
        return None
    return 1 if value.lower() == 'true' else 0
