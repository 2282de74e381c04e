import logging
import sqlite3

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import build_where, get_db, get_or_404, update_row
from .errors import BadRequest
from .validation import StudentCreate, StudentUpdate, parse_body

logger = logging.getLogger(__name__)

students_bp = Blueprint('students_bp', __name__, url_prefix='/api/students')

UNIQUE_FIELDS = [
    ('roll_number', 'A student with this roll number already exists'),
    ('email', 'A student with this email already exists'),
]

STUDENT_QUERY = '''
    SELECT s.*, c.name AS class_name, c.program AS class_program, c.year AS class_year,
           c.division AS class_division
    FROM students s JOIN classes c ON s.class_id = c.class_id
'''


def student_to_dict(row):
    student = {k: row[k] for k in ('student_id', 'roll_number', 'name', 'email', 'phone', 'class_id', 'user_id')}
    student['class'] = {
        'class_id': row['class_id'],
        'name': row['class_name'],
        'program': row['class_program'],
        'year': row['class_year'],
        'division': row['class_division'],
    }
    return student


def load_student(db, student_id):
    row = db.execute(STUDENT_QUERY + ' WHERE s.student_id = ?', (student_id,)).fetchone()
    return student_to_dict(row) if row else None


def check_student_fields(db, data, exclude_id=None):
    for column, message in UNIQUE_FIELDS:
        if column in data and db.execute(
            f'SELECT 1 FROM students WHERE {column} = ? AND student_id IS NOT ?', (data[column], exclude_id)
        ).fetchone():
            raise BadRequest(message)
    if 'class_id' in data and db.execute(
        'SELECT 1 FROM classes WHERE class_id = ?', (data['class_id'],)
    ).fetchone() is None:
        raise BadRequest('Class not found')
    if data.get('user_id') is not None:
        if db.execute('SELECT 1 FROM users WHERE user_id = ?', (data['user_id'],)).fetchone() is None:
            raise BadRequest('User not found')
        if db.execute(
            'SELECT 1 FROM students WHERE user_id = ? AND student_id IS NOT ?', (data['user_id'], exclude_id)
        ).fetchone():
            raise BadRequest('User is already linked to another student')


@students_bp.route('')
@login_required
def list_students():
    search = request.args.get('search')
    pattern = f'%{search}%' if search else None
    where, params = build_where([
        ('s.class_id = ?', request.args.get('class_id', type=int)),
        ('(s.roll_number LIKE ? OR s.name LIKE ? OR s.email LIKE ?)', (pattern,) * 3 if pattern else None),
    ])
    rows = get_db().execute(STUDENT_QUERY + where + ' ORDER BY s.roll_number', params).fetchall()
    return jsonify([student_to_dict(r) for r in rows])


@students_bp.route('', methods=['POST'])
@admin_required
def create_student():
    data = parse_body(StudentCreate)
    db = get_db()
    check_student_fields(db, data.model_dump())
    try:
        cur = db.execute(
            'INSERT INTO students (roll_number, name, email, phone, class_id, user_id) VALUES (?, ?, ?, ?, ?, ?)',
            (data.roll_number, data.name, data.email, data.phone, data.class_id, data.user_id),
        )
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        logger.warning(f"Student insert rejected: {e}")
        raise BadRequest('A student with this roll number or email already exists')
    logger.info(f"Created student {data.roll_number}")
    return jsonify(load_student(db, cur.lastrowid)), 201


@students_bp.route('/<int:student_id>')
@login_required
def get_student(student_id):
    db = get_db()
    get_or_404(db, 'students', 'student_id', student_id, 'Student')
    return jsonify(load_student(db, student_id))


@students_bp.route('/<int:student_id>', methods=['PATCH'])
@admin_required
def update_student(student_id):
    changes = parse_body(StudentUpdate).changes()
    db = get_db()
    get_or_404(db, 'students', 'student_id', student_id, 'Student')
    check_student_fields(db, changes, exclude_id=student_id)
    try:
        update_row(db, 'students', 'student_id', student_id, changes)
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        logger.warning(f"Student update rejected: {e}")
        raise BadRequest('A student with this roll number or email already exists')
    return jsonify(load_student(db, student_id))


@students_bp.route('/<int:student_id>', methods=['DELETE'])
@admin_required
def delete_student(student_id):
    db = get_db()
    get_or_404(db, 'students', 'student_id', student_id, 'Student')
    db.execute('DELETE FROM students WHERE student_id = ?', (student_id,))
    db.commit()
    logger.info(f"Deleted student {student_id}")
    return jsonify({'status': 'success', 'message': 'Student deleted successfully.'})
