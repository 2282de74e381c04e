import logging
import sqlite3

from flask import Blueprint, jsonify, request

from .auth import admin_required, login_required
from .db import build_where, count_rows, get_db, get_or_404, parse_bool_arg, row_to_dict, rows_to_dicts, update_row
from .errors import BadRequest
from .timetable import fetch_entries
from .validation import RoomCreate, RoomUpdate, parse_body

logger = logging.getLogger(__name__)

rooms_bp = Blueprint('rooms_bp', __name__, url_prefix='/api/rooms')

DUPLICATE_NAME = 'A room with this name already exists'


def name_taken(db, name, exclude_id=None):
    row = db.execute(
        'SELECT 1 FROM rooms WHERE name = ? AND room_id IS NOT ?', (name, exclude_id)
    ).fetchone()
    return row is not None


@rooms_bp.route('')
@login_required
def list_rooms():
    where, params = build_where([
        ('r.room_type = ?', request.args.get('room_type')),
        ('r.is_available = ?', parse_bool_arg(request.args.get('is_available'))),
        ('r.building = ?', request.args.get('building')),
    ])
    rows = get_db().execute(f'''
        SELECT r.*, (SELECT COUNT(*) FROM timetable_entries e WHERE e.room_id = r.room_id) AS entry_count
        FROM rooms r{where}
        ORDER BY r.name
    ''', params).fetchall()
    return jsonify(rows_to_dicts(rows))


@rooms_bp.route('', methods=['POST'])
@admin_required
def create_room():
    data = parse_body(RoomCreate)
    db = get_db()
    if name_taken(db, data.name):
        raise BadRequest(DUPLICATE_NAME)
    try:
        cur = db.execute(
            'INSERT INTO rooms (name, capacity, room_type, building, floor, is_available) VALUES (?, ?, ?, ?, ?, ?)',
            (data.name, data.capacity, data.room_type, data.building, data.floor, int(data.is_available)),
        )
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_NAME)
    logger.info(f"Created room {data.name}")
    room = db.execute('SELECT * FROM rooms WHERE room_id = ?', (cur.lastrowid,)).fetchone()
    return jsonify(row_to_dict(room)), 201


@rooms_bp.route('/<int:room_id>')
@login_required
def get_room(room_id):
    db = get_db()
    room = row_to_dict(get_or_404(db, 'rooms', 'room_id', room_id, 'Room'))
    room['timetable_entries'] = fetch_entries(db, [('e.room_id = ?', room_id)])
    return jsonify(room)


@rooms_bp.route('/<int:room_id>', methods=['PATCH'])
@admin_required
def update_room(room_id):
    changes = parse_body(RoomUpdate).changes()
    db = get_db()
    existing = get_or_404(db, 'rooms', 'room_id', room_id, 'Room')

    if 'name' in changes and changes['name'] != existing['name'] and name_taken(db, changes['name'], room_id):
        raise BadRequest(DUPLICATE_NAME)
    if 'is_available' in changes:
        changes['is_available'] = int(changes['is_available'])

    try:
        update_row(db, 'rooms', 'room_id', room_id, changes)
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest(DUPLICATE_NAME)
    room = db.execute('SELECT * FROM rooms WHERE room_id = ?', (room_id,)).fetchone()
    return jsonify(row_to_dict(room))


@rooms_bp.route('/<int:room_id>', methods=['DELETE'])
@admin_required
def delete_room(room_id):
    db = get_db()
    get_or_404(db, 'rooms', 'room_id', room_id, 'Room')
    if count_rows(db, 'timetable_entries', 'room_id', room_id) > 0:
        raise BadRequest('Cannot delete room with existing timetable entries')
    try:
        db.execute('DELETE FROM rooms WHERE room_id = ?', (room_id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        raise BadRequest('Cannot delete room, it is in use by another table.')
    logger.info(f"Deleted room {room_id}")
    return jsonify({'status': 'success', 'message': 'Room deleted successfully.'})
