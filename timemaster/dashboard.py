import logging

from flask import Blueprint, jsonify

from .auth import get_current_user, login_required, role_required
from .classes import CLASS_WITH_COUNTS
from .db import DAY_ORDER_SQL, get_db, row_to_dict
from .students import load_student
from .timetable import fetch_entries

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard_bp', __name__, url_prefix='/api')

COUNTED_TABLES = ['rooms', 'teachers', 'subjects', 'classes', 'students']


def all_time_slots(db):
    rows = db.execute(
        f'SELECT * FROM time_slots ORDER BY {DAY_ORDER_SQL.format(col="day")}, period'
    ).fetchall()
    return [dict(r) for r in rows]


@dashboard_bp.route('/dashboard')
@login_required
def dashboard():
    db = get_db()
    stats = {table: db.execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0] for table in COUNTED_TABLES}
    recent = db.execute(CLASS_WITH_COUNTS + ' ORDER BY c.created_at DESC, c.class_id DESC LIMIT 5').fetchall()
    user = get_current_user()
    return jsonify({
        'user': {'name': user['name'] or 'User', 'role': user['role']},
        'stats': stats,
        'recent_classes': [dict(r) for r in recent],
    })


@dashboard_bp.route('/my-schedule')
@role_required('TEACHER')
def my_schedule():
    db = get_db()
    teacher = db.execute(
        'SELECT * FROM teachers WHERE user_id = ?', (get_current_user()['user_id'],)
    ).fetchone()
    if teacher is None:
        return jsonify({'teacher': None, 'entries': [], 'time_slots': []})

    return jsonify({
        'teacher': row_to_dict(teacher),
        'entries': fetch_entries(db, [('e.teacher_id = ?', teacher['teacher_id'])]),
        'time_slots': all_time_slots(db),
    })


@dashboard_bp.route('/my-timetable')
@role_required('STUDENT')
def my_timetable():
    db = get_db()
    row = db.execute(
        'SELECT student_id FROM students WHERE user_id = ?', (get_current_user()['user_id'],)
    ).fetchone()
    if row is None:
        return jsonify({'student': None, 'entries': [], 'time_slots': []})

    student = load_student(db, row['student_id'])
    return jsonify({
        'student': student,
        'entries': fetch_entries(db, [('e.class_id = ?', student['class_id'])]),
        'time_slots': all_time_slots(db),
    })
