import logging
import sqlite3
from collections import defaultdict

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import build_where, count_rows, get_db, get_or_404, parse_bool_arg, row_to_dict, update_row
from .errors import BadRequest
from .timetable import fetch_entries
from .validation import TeacherCreate, TeacherUpdate, parse_body

logger = logging.getLogger(__name__)

teachers_bp = Blueprint('teachers_bp', __name__, url_prefix='/api/teachers')

UNIQUE_FIELDS = [
    ('employee_id', 'A teacher with this employee ID already exists'),
    ('email', 'A teacher with this email already exists'),
]


def check_unique(db, data, exclude_id=None):
    for column, message in UNIQUE_FIELDS:
        if column not in data:
            continue
        row = db.execute(
            f'SELECT 1 FROM teachers WHERE {column} = ? AND teacher_id IS NOT ?', (data[column], exclude_id)
        ).fetchone()
        if row is not None:
            raise BadRequest(message)


def check_user_link(db, user_id, exclude_id=None):
    if user_id is None:
        return
    if db.execute('SELECT 1 FROM users WHERE user_id = ?', (user_id,)).fetchone() is None:
        raise BadRequest('User not found')
    if db.execute('SELECT 1 FROM teachers WHERE user_id = ? AND teacher_id IS NOT ?', (user_id, exclude_id)).fetchone():
        raise BadRequest('User is already linked to another teacher')


def teacher_subjects(db, teacher_ids):
    subjects = defaultdict(list)
    if not teacher_ids:
        return subjects
    placeholders = ','.join('?' * len(teacher_ids))
    rows = db.execute(f'''
        SELECT ts.teacher_id, s.subject_id, s.code, s.name, s.subject_type
        FROM teacher_subjects ts JOIN subjects s ON ts.subject_id = s.subject_id
        WHERE ts.teacher_id IN ({placeholders})
        ORDER BY s.code
    ''', list(teacher_ids)).fetchall()
    for r in rows:
        subjects[r['teacher_id']].append({
            'subject_id': r['subject_id'], 'code': r['code'], 'name': r['name'], 'subject_type': r['subject_type'],
        })
    return subjects


def load_teacher(db, teacher_id):
    teacher = row_to_dict(get_or_404(db, 'teachers', 'teacher_id', teacher_id, 'Teacher'))
    teacher['subjects'] = teacher_subjects(db, [teacher_id])[teacher_id]
    return teacher


def replace_teacher_subjects(db, teacher_id, subject_ids):
    for subject_id in subject_ids:
        if db.execute('SELECT 1 FROM subjects WHERE subject_id = ?', (subject_id,)).fetchone() is None:
            raise BadRequest('Subject not found')
    db.execute('DELETE FROM teacher_subjects WHERE teacher_id = ?', (teacher_id,))
    db.executemany(
        'INSERT INTO teacher_subjects (teacher_id, subject_id) VALUES (?, ?)',
        [(teacher_id, subject_id) for subject_id in set(subject_ids)],
    )


@teachers_bp.route('')
@login_required
def list_teachers():
    where, params = build_where([
        ('t.department = ?', request.args.get('department')),
        ('t.is_available = ?', parse_bool_arg(request.args.get('is_available'))),
    ])
    db = get_db()
    rows = db.execute(f'''
        SELECT t.*, (SELECT COUNT(*) FROM timetable_entries e WHERE e.teacher_id = t.teacher_id) AS entry_count
        FROM teachers t{where}
        ORDER BY t.name
    ''', params).fetchall()

    teachers = [row_to_dict(r) for r in rows]
    subjects = teacher_subjects(db, [t['teacher_id'] for t in teachers])
    for t in teachers:
        t['subjects'] = subjects[t['teacher_id']]
    return jsonify(teachers)


@teachers_bp.route('', methods=['POST'])
@admin_required
def create_teacher():
    data = parse_body(TeacherCreate)
    db = get_db()
    check_unique(db, data.model_dump())
    check_user_link(db, data.user_id)
    try:
        cur = db.execute(
            'INSERT INTO teachers (employee_id, name, email, phone, department, designation, is_available, user_id) '
            'VALUES (?, ?, ?, ?, ?, ?, ?, ?)',
            (data.employee_id, data.name, data.email, data.phone, data.department, data.designation,
             int(data.is_available), data.user_id),
        )
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        logger.warning(f"Teacher insert rejected: {e}")
        raise BadRequest('A teacher with this employee ID or email already exists')
    logger.info(f"Created teacher {data.employee_id}")
    return jsonify(load_teacher(db, cur.lastrowid)), 201


@teachers_bp.route('/<int:teacher_id>')
@login_required
def get_teacher(teacher_id):
    db = get_db()
    teacher = load_teacher(db, teacher_id)
    teacher['timetable_entries'] = fetch_entries(db, [('e.teacher_id = ?', teacher_id)])
    return jsonify(teacher)


@teachers_bp.route('/<int:teacher_id>', methods=['PATCH'])
@admin_required
def update_teacher(teacher_id):
    changes = parse_body(TeacherUpdate).changes()
    db = get_db()
    get_or_404(db, 'teachers', 'teacher_id', teacher_id, 'Teacher')

    subject_ids = changes.pop('subject_ids', None)
    check_unique(db, changes, exclude_id=teacher_id)
    if 'user_id' in changes:
        check_user_link(db, changes['user_id'], exclude_id=teacher_id)
    if 'is_available' in changes:
        changes['is_available'] = int(changes['is_available'])

    # Subject links and field changes commit together.
    try:
        if subject_ids is not None:
            replace_teacher_subjects(db, teacher_id, subject_ids)
        update_row(db, 'teachers', 'teacher_id', teacher_id, changes)
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        logger.warning(f"Teacher update rejected: {e}")
        raise BadRequest('A teacher with this employee ID or email already exists')
    except BadRequest:
        db.rollback()
        raise
    return jsonify(load_teacher(db, teacher_id))


@teachers_bp.route('/<int:teacher_id>', methods=['DELETE'])
@admin_required
def delete_teacher(teacher_id):
    db = get_db()
    get_or_404(db, 'teachers', 'teacher_id', teacher_id, 'Teacher')
    if count_rows(db, 'timetable_entries', 'teacher_id', teacher_id) > 0:
        raise BadRequest('Cannot delete teacher with existing timetable entries')
    try:
        db.execute('DELETE FROM teachers WHERE teacher_id = ?', (teacher_id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('Cannot delete teacher, it is in use by another table.')
    logger.info(f"Deleted teacher {teacher_id}")
    return jsonify({'status': 'success', 'message': 'Teacher deleted successfully.'})
