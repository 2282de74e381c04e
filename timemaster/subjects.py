import logging
import sqlite3
from collections import defaultdict

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import build_where, count_rows, get_db, get_or_404, update_row
from .errors import BadRequest
from .timetable import fetch_entries
from .validation import SubjectCreate, SubjectUpdate, parse_body

logger = logging.getLogger(__name__)

subjects_bp = Blueprint('subjects_bp', __name__, url_prefix='/api/subjects')

DUPLICATE_CODE = 'A subject with this code already exists'


def subject_teachers(db, subject_ids):
    """Maps subject_id -> list of teachers who can teach it."""
    teachers = defaultdict(list)
    if not subject_ids:
        return teachers
    placeholders = ','.join('?' * len(subject_ids))
    rows = db.execute(f'''
        SELECT ts.subject_id, t.teacher_id, t.name, t.employee_id
        FROM teacher_subjects ts JOIN teachers t ON ts.teacher_id = t.teacher_id
        WHERE ts.subject_id IN ({placeholders})
        ORDER BY t.name
    ''', list(subject_ids)).fetchall()
    for r in rows:
        teachers[r['subject_id']].append({'teacher_id': r['teacher_id'], 'name': r['name'], 'employee_id': r['employee_id']})
    return teachers


def load_subject(db, subject_id):
    subject = dict(get_or_404(db, 'subjects', 'subject_id', subject_id, 'Subject'))
    subject['teachers'] = subject_teachers(db, [subject_id])[subject_id]
    return subject


def replace_subject_teachers(db, subject_id, teacher_ids):
    for teacher_id in teacher_ids:
        if db.execute('SELECT 1 FROM teachers WHERE teacher_id = ?', (teacher_id,)).fetchone() is None:
            raise BadRequest('Teacher not found')
    db.execute('DELETE FROM teacher_subjects WHERE subject_id = ?', (subject_id,))
    db.executemany(
        'INSERT INTO teacher_subjects (teacher_id, subject_id) VALUES (?, ?)',
        [(teacher_id, subject_id) for teacher_id in set(teacher_ids)],
    )


@subjects_bp.route('')
@login_required
def list_subjects():
    search = request.args.get('search')
    pattern = f'%{search}%' if search else None
    where, params = build_where([
        ('s.subject_type = ?', request.args.get('subject_type')),
        ('(s.code LIKE ? OR s.name LIKE ?)', (pattern, pattern) if pattern else None),
    ])
    db = get_db()
    rows = db.execute(f'''
        SELECT s.*, (SELECT COUNT(*) FROM timetable_entries e WHERE e.subject_id = s.subject_id) AS entry_count
        FROM subjects s{where}
        ORDER BY s.code
    ''', params).fetchall()

    subjects = [dict(r) for r in rows]
    teachers = subject_teachers(db, [s['subject_id'] for s in subjects])
    for s in subjects:
        s['teachers'] = teachers[s['subject_id']]
    return jsonify(subjects)


@subjects_bp.route('', methods=['POST'])
@admin_required
def create_subject():
    data = parse_body(SubjectCreate)
    db = get_db()
    try:
        cur = db.execute(
            'INSERT INTO subjects (code, name, credits, subject_type) VALUES (?, ?, ?, ?)',
            (data.code, data.name, data.credits, data.subject_type),
        )
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_CODE)
    logger.info(f"Created subject {data.code}")
    return jsonify(load_subject(db, cur.lastrowid)), 201


@subjects_bp.route('/<int:subject_id>')
@login_required
def get_subject(subject_id):
    db = get_db()
    subject = load_subject(db, subject_id)
    subject['timetable_entries'] = fetch_entries(db, [('e.subject_id = ?', subject_id)])
    return jsonify(subject)


@subjects_bp.route('/<int:subject_id>', methods=['PATCH'])
@admin_required
def update_subject(subject_id):
    changes = parse_body(SubjectUpdate).changes()
    db = get_db()
    existing = get_or_404(db, 'subjects', 'subject_id', subject_id, 'Subject')

    teacher_ids = changes.pop('teacher_ids', None)
    if 'code' in changes and changes['code'] != existing['code']:
        if db.execute('SELECT 1 FROM subjects WHERE code = ?', (changes['code'],)).fetchone():
            raise BadRequest(DUPLICATE_CODE)

    try:
        if teacher_ids is not None:
            replace_subject_teachers(db, subject_id, teacher_ids)
        update_row(db, 'subjects', 'subject_id', subject_id, changes)
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_CODE)
    except BadRequest:
        db.rollback()
        raise
    return jsonify(load_subject(db, subject_id))


@subjects_bp.route('/<int:subject_id>', methods=['DELETE'])
@admin_required
def delete_subject(subject_id):
    db = get_db()
    get_or_404(db, 'subjects', 'subject_id', subject_id, 'Subject')
    if count_rows(db, 'timetable_entries', 'subject_id', subject_id) > 0:
        raise BadRequest('Cannot delete subject with existing timetable entries')
    try:
        db.execute('DELETE FROM subjects WHERE subject_id = ?', (subject_id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('Cannot delete subject, it is in use by another table.')
    logger.info(f"Deleted subject {subject_id}")
    return jsonify({'status': 'success', 'message': 'Subject deleted successfully.'})
