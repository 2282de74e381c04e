import logging
import sqlite3

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import DAY_ORDER_SQL, build_where, get_db, get_or_404, update_row
from .errors import BadRequest, ConflictError
from .scheduling import (
    AVAILABILITY_MESSAGES,
    CONFLICT_MESSAGES,
    Availability,
    Conflict,
    check_availability,
    conflict_from_integrity_error,
    find_entry_conflict,
)
from .validation import TimetableEntryCreate, TimetableEntryUpdate, parse_body

logger = logging.getLogger(__name__)

timetable_bp = Blueprint('timetable_bp', __name__, url_prefix='/api/timetable')

# (column on timetable_entries, referenced table, label used in error messages)
REFERENCES = [
    ('class_id', 'classes', 'Class'),
    ('subject_id', 'subjects', 'Subject'),
    ('teacher_id', 'teachers', 'Teacher'),
    ('room_id', 'rooms', 'Room'),
    ('time_slot_id', 'time_slots', 'Time slot'),
]

ENTRY_QUERY = f'''
    SELECT e.entry_id, e.class_id, e.subject_id, e.teacher_id, e.room_id, e.time_slot_id,
           c.name AS class_name, c.program AS class_program, c.year AS class_year,
           c.division AS class_division,
           s.code AS subject_code, s.name AS subject_name, s.subject_type,
           t.name AS teacher_name, t.employee_id AS teacher_employee_id,
           t.department AS teacher_department,
           r.name AS room_name, r.room_type, r.building AS room_building,
           ts.day, ts.period, ts.start_time, ts.end_time
    FROM timetable_entries e
    JOIN classes c ON e.class_id = c.class_id
    JOIN subjects s ON e.subject_id = s.subject_id
    JOIN teachers t ON e.teacher_id = t.teacher_id
    JOIN rooms r ON e.room_id = r.room_id
    JOIN time_slots ts ON e.time_slot_id = ts.time_slot_id
    {{where}}
    ORDER BY {DAY_ORDER_SQL.format(col='ts.day')}, ts.period, c.name
'''


def entry_to_dict(row):
    return {
        'entry_id': row['entry_id'],
        'class_id': row['class_id'],
        'subject_id': row['subject_id'],
        'teacher_id': row['teacher_id'],
        'room_id': row['room_id'],
        'time_slot_id': row['time_slot_id'],
        'class': {
            'class_id': row['class_id'],
            'name': row['class_name'],
            'program': row['class_program'],
            'year': row['class_year'],
            'division': row['class_division'],
        },
        'subject': {
            'subject_id': row['subject_id'],
            'code': row['subject_code'],
            'name': row['subject_name'],
            'subject_type': row['subject_type'],
        },
        'teacher': {
            'teacher_id': row['teacher_id'],
            'name': row['teacher_name'],
            'employee_id': row['teacher_employee_id'],
            'department': row['teacher_department'],
        },
        'room': {
            'room_id': row['room_id'],
            'name': row['room_name'],
            'room_type': row['room_type'],
            'building': row['room_building'],
        },
        'time_slot': {
            'time_slot_id': row['time_slot_id'],
            'day': row['day'],
            'period': row['period'],
            'start_time': row['start_time'],
            'end_time': row['end_time'],
        },
    }


def entry_to_slot(row):
    """Flat view of an entry, the shape handed to the AI helper and the exports."""
    return {
        'day': row['day'],
        'period': row['period'],
        'start_time': row['start_time'],
        'end_time': row['end_time'],
        'subject_name': row['subject_name'],
        'subject_code': row['subject_code'],
        'teacher_name': row['teacher_name'],
        'room_name': row['room_name'],
        'class_name': row['class_name'],
    }


def fetch_entry_rows(db, filters=(), limit=None):
    where, params = build_where(filters)
    sql = ENTRY_QUERY.format(where=where)
    if limit is not None:
        sql += ' LIMIT ?'
        params.append(limit)
    return db.execute(sql, params).fetchall()


def fetch_entries(db, filters=(), limit=None):
    return [entry_to_dict(r) for r in fetch_entry_rows(db, filters, limit)]


def load_references(db, data):
    """Fetches every referenced row named in ``data``; a missing one is a 400."""
    found = {}
    for column, table, label in REFERENCES:
        if column not in data:
            continue
        row = db.execute(f'SELECT * FROM {table} WHERE {column} = ?', (data[column],)).fetchone()
        if row is None:
            raise BadRequest(f'{label} not found')
        found[column] = row
    return found


def ensure_available(references, room_first=False):
    availability = check_availability(
        references.get('teacher_id'), references.get('room_id'), room_first=room_first
    )
    if availability is not Availability.OK:
        raise BadRequest(AVAILABILITY_MESSAGES[availability])


def ensure_no_conflict(db, entry, exclude_id=None):
    conflict = find_entry_conflict(db, entry, exclude_id=exclude_id)
    if conflict is not Conflict.OK:
        logger.info(f"Rejected timetable write: {conflict.value} for {entry}")
        raise ConflictError(CONFLICT_MESSAGES[conflict])


def commit_entry_write(db, write):
    """Runs ``write()`` and commits; a unique-index violation from a concurrent writer becomes a 409."""
    try:
        result = write()
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        conflict = conflict_from_integrity_error(e)
        if conflict is None:
            raise
        logger.warning(f"Unique index rejected timetable write: {e}")
        raise ConflictError(CONFLICT_MESSAGES[conflict])
    return result


def get_entry(db, entry_id):
    rows = fetch_entry_rows(db, [('e.entry_id = ?', entry_id)])
    return entry_to_dict(rows[0]) if rows else None


# --- ROUTES ---
@timetable_bp.route('')
@login_required
def list_entries():
    filters = [
        ('e.class_id = ?', request.args.get('class_id', type=int)),
        ('e.teacher_id = ?', request.args.get('teacher_id', type=int)),
        ('e.room_id = ?', request.args.get('room_id', type=int)),
        ('ts.day = ?', request.args.get('day')),
    ]
    return jsonify(fetch_entries(get_db(), filters))


@timetable_bp.route('', methods=['POST'])
@admin_required
def create_entry():
    data = parse_body(TimetableEntryCreate).model_dump()
    db = get_db()

    references = load_references(db, data)
    # Clashes are reported before availability on create.
    ensure_no_conflict(db, data)
    ensure_available(references, room_first=True)

    cur = commit_entry_write(db, lambda: db.execute(
        'INSERT INTO timetable_entries (class_id, subject_id, teacher_id, room_id, time_slot_id) '
        'VALUES (?, ?, ?, ?, ?)',
        (data['class_id'], data['subject_id'], data['teacher_id'], data['room_id'], data['time_slot_id']),
    ))
    logger.info(f"Created timetable entry {cur.lastrowid}")
    return jsonify(get_entry(db, cur.lastrowid)), 201


@timetable_bp.route('/<int:entry_id>')
@login_required
def get_entry_route(entry_id):
    db = get_db()
    get_or_404(db, 'timetable_entries', 'entry_id', entry_id, 'Timetable entry')
    return jsonify(get_entry(db, entry_id))


@timetable_bp.route('/<int:entry_id>', methods=['PATCH'])
@admin_required
def update_entry(entry_id):
    changes = parse_body(TimetableEntryUpdate).changes()
    db = get_db()
    existing = get_or_404(db, 'timetable_entries', 'entry_id', entry_id, 'Timetable entry')

    references = load_references(db, changes)
    # Only a teacher or room the patch actually changes goes through the availability gate.
    gated = {k: row for k, row in references.items() if existing[k] != changes[k]}
    merged = {**dict(existing), **changes}
    ensure_available(gated)
    ensure_no_conflict(db, merged, exclude_id=entry_id)

    if changes:
        commit_entry_write(db, lambda: update_row(db, 'timetable_entries', 'entry_id', entry_id, changes))
        logger.info(f"Updated timetable entry {entry_id}: {changes}")
    return jsonify(get_entry(db, entry_id))


@timetable_bp.route('/<int:entry_id>', methods=['DELETE'])
@admin_required
def delete_entry(entry_id):
    db = get_db()
    get_or_404(db, 'timetable_entries', 'entry_id', entry_id, 'Timetable entry')
    db.execute('DELETE FROM timetable_entries WHERE entry_id = ?', (entry_id,))
    db.commit()
    logger.info(f"Deleted timetable entry {entry_id}")
    return jsonify({'status': 'success', 'message': 'Timetable entry deleted successfully.'})
