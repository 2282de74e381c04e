import logging
import sqlite3

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import build_where, count_rows, get_db, get_or_404, update_row
from .errors import BadRequest
from .timetable import fetch_entries
from .validation import ClassCreate, ClassUpdate, parse_body

logger = logging.getLogger(__name__)

classes_bp = Blueprint('classes_bp', __name__, url_prefix='/api/classes')

DUPLICATE_NAME = 'A class with this name already exists'

CLASS_WITH_COUNTS = '''
    SELECT c.*,
           (SELECT COUNT(*) FROM students s WHERE s.class_id = c.class_id) AS student_count,
           (SELECT COUNT(*) FROM timetable_entries e WHERE e.class_id = c.class_id) AS entry_count
    FROM classes c
'''


def name_taken(db, name, exclude_id=None):
    row = db.execute(
        'SELECT 1 FROM classes WHERE name = ? AND class_id IS NOT ?', (name, exclude_id)
    ).fetchone()
    return row is not None


@classes_bp.route('')
@login_required
def list_classes():
    where, params = build_where([
        ('c.program = ?', request.args.get('program')),
        ('c.year = ?', request.args.get('year', type=int)),
        ('c.semester = ?', request.args.get('semester', type=int)),
    ])
    rows = get_db().execute(
        CLASS_WITH_COUNTS + where + ' ORDER BY c.program, c.year, c.division', params
    ).fetchall()
    return jsonify([dict(r) for r in rows])


@classes_bp.route('', methods=['POST'])
@admin_required
def create_class():
    data = parse_body(ClassCreate)
    db = get_db()
    if name_taken(db, data.name):
        raise BadRequest(DUPLICATE_NAME)
    try:
        cur = db.execute(
            'INSERT INTO classes (name, program, year, division, semester, strength) VALUES (?, ?, ?, ?, ?, ?)',
            (data.name, data.program, data.year, data.division, data.semester, data.strength),
        )
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_NAME)
    logger.info(f"Created class {data.name}")
    row = db.execute('SELECT * FROM classes WHERE class_id = ?', (cur.lastrowid,)).fetchone()
    return jsonify(dict(row)), 201


@classes_bp.route('/<int:class_id>')
@login_required
def get_class(class_id):
    db = get_db()
    cls = dict(get_or_404(db, 'classes', 'class_id', class_id, 'Class'))
    students = db.execute(
        'SELECT * FROM students WHERE class_id = ? ORDER BY roll_number', (class_id,)
    ).fetchall()
    cls['students'] = [dict(s) for s in students]
    cls['timetable_entries'] = fetch_entries(db, [('e.class_id = ?', class_id)])
    return jsonify(cls)


@classes_bp.route('/<int:class_id>', methods=['PATCH'])
@admin_required
def update_class(class_id):
    changes = parse_body(ClassUpdate).changes()
    db = get_db()
    existing = get_or_404(db, 'classes', 'class_id', class_id, 'Class')

    if 'name' in changes and changes['name'] != existing['name'] and name_taken(db, changes['name'], class_id):
        raise BadRequest(DUPLICATE_NAME)

    try:
        update_row(db, 'classes', 'class_id', class_id, changes)
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_NAME)
    row = db.execute('SELECT * FROM classes WHERE class_id = ?', (class_id,)).fetchone()
    return jsonify(dict(row))


@classes_bp.route('/<int:class_id>', methods=['DELETE'])
@admin_required
def delete_class(class_id):
    db = get_db()
    get_or_404(db, 'classes', 'class_id', class_id, 'Class')
    if count_rows(db, 'students', 'class_id', class_id) > 0:
        raise BadRequest('Cannot delete class with enrolled students')
    if count_rows(db, 'timetable_entries', 'class_id', class_id) > 0:
        raise BadRequest('Cannot delete class with existing timetable entries')
    try:
        db.execute('DELETE FROM classes WHERE class_id = ?', (class_id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('Cannot delete class, it is in use by another table.')
    logger.info(f"Deleted class {class_id}")
    return jsonify({'status': 'success', 'message': 'Class deleted successfully.'})
