import logging
import sqlite3

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import DAY_ORDER_SQL, build_where, count_rows, get_db, get_or_404, update_row
from .errors import BadRequest
from .validation import TimeSlotCreate, TimeSlotUpdate, parse_body, to_minutes

logger = logging.getLogger(__name__)

timeslots_bp = Blueprint('timeslots_bp', __name__, url_prefix='/api/timeslots')

SLOT_ORDER = f' ORDER BY {DAY_ORDER_SQL.format(col="day")}, period'


def check_slot(db, slot, exclude_id=None):
    """Validates a complete (day, period, start_time, end_time) slot before it is written."""
    if to_minutes(slot['start_time']) >= to_minutes(slot['end_time']):
        raise BadRequest('Start time must be before end time')
    if db.execute(
        'SELECT 1 FROM time_slots WHERE day = ? AND period = ? AND time_slot_id IS NOT ?',
        (slot['day'], slot['period'], exclude_id),
    ).fetchone():
        raise BadRequest('A time slot for this day and period already exists')
    if db.execute(
        'SELECT 1 FROM time_slots WHERE day = ? AND start_time = ? AND end_time = ? AND time_slot_id IS NOT ?',
        (slot['day'], slot['start_time'], slot['end_time'], exclude_id),
    ).fetchone():
        raise BadRequest('A time slot with these times already exists for this day')


def load_slot(db, time_slot_id):
    return dict(db.execute('SELECT * FROM time_slots WHERE time_slot_id = ?', (time_slot_id,)).fetchone())


@timeslots_bp.route('')
@login_required
def list_timeslots():
    where, params = build_where([('day = ?', request.args.get('day'))])
    rows = get_db().execute('SELECT * FROM time_slots' + where + SLOT_ORDER, params).fetchall()
    return jsonify([dict(r) for r in rows])


@timeslots_bp.route('', methods=['POST'])
@admin_required
def create_timeslot():
    data = parse_body(TimeSlotCreate).model_dump()
    db = get_db()
    check_slot(db, data)
    try:
        cur = db.execute(
            'INSERT INTO time_slots (day, period, start_time, end_time) VALUES (?, ?, ?, ?)',
            (data['day'], data['period'], data['start_time'], data['end_time']),
        )
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('A time slot for this day and period already exists')
    logger.info(f"Created time slot {data['day']} period {data['period']}")
    return jsonify(load_slot(db, cur.lastrowid)), 201


@timeslots_bp.route('/<int:time_slot_id>')
@login_required
def get_timeslot(time_slot_id):
    db = get_db()
    slot = dict(get_or_404(db, 'time_slots', 'time_slot_id', time_slot_id, 'Time slot'))
    slot['entry_count'] = count_rows(db, 'timetable_entries', 'time_slot_id', time_slot_id)
    return jsonify(slot)


@timeslots_bp.route('/<int:time_slot_id>', methods=['PATCH'])
@admin_required
def update_timeslot(time_slot_id):
    changes = parse_body(TimeSlotUpdate).changes()
    db = get_db()
    existing = get_or_404(db, 'time_slots', 'time_slot_id', time_slot_id, 'Time slot')

    if changes:
        check_slot(db, {**dict(existing), **changes}, exclude_id=time_slot_id)
    try:
        update_row(db, 'time_slots', 'time_slot_id', time_slot_id, changes)
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('A time slot for this day and period already exists')
    return jsonify(load_slot(db, time_slot_id))


@timeslots_bp.route('/<int:time_slot_id>', methods=['DELETE'])
@admin_required
def delete_timeslot(time_slot_id):
    db = get_db()
    get_or_404(db, 'time_slots', 'time_slot_id', time_slot_id, 'Time slot')
    if count_rows(db, 'timetable_entries', 'time_slot_id', time_slot_id) > 0:
        raise BadRequest('Cannot delete time slot with existing timetable entries')
    try:
        db.execute('DELETE FROM time_slots WHERE time_slot_id = ?', (time_slot_id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('Cannot delete time slot, it is in use by another table.')
    logger.info(f"Deleted time slot {time_slot_id}")
    return jsonify({'status': 'success', 'message': 'Time slot deleted successfully.'})
