import logging

from flask import Blueprint, jsonify

from . import gemini
from .auth import login_required, role_required
from .db import DAY_ORDER_SQL, get_db, get_or_404
from .errors import APIError, BadRequest
from .teachers import teacher_subjects
from .timetable import entry_to_slot, fetch_entry_rows
from .validation import ChatRequest, GenerateRequest, OptimizeRequest, parse_body

logger = logging.getLogger(__name__)

ai_bp = Blueprint('ai_bp', __name__, url_prefix='/api/ai')


def ai_failure(action, e):
    logger.error(f"AI {action} failed: {e}", exc_info=True)
    return APIError(f'Failed to {action}', 500)


def names(db, table):
    return [r['name'] for r in db.execute(f'SELECT name FROM {table} ORDER BY name').fetchall()]


@ai_bp.route('/chat', methods=['POST'])
@login_required
def chat():
    data = parse_body(ChatRequest)
    context = None
    if data.include_context:
        db = get_db()
        context = {
            'timetable': [entry_to_slot(r) for r in fetch_entry_rows(db, limit=gemini.CHAT_CONTEXT_LIMIT)],
            'subjects': names(db, 'subjects'),
            'teachers': names(db, 'teachers'),
            'rooms': names(db, 'rooms'),
        }
    try:
        response = gemini.chat_with_ai(data.message, context)
    except gemini.AIServiceError as e:
        raise ai_failure('process chat request', e)
    return jsonify({'response': response})


@ai_bp.route('/generate', methods=['POST'])
@role_required('ADMIN', message='Only administrators can generate timetables')
def generate():
    data = parse_body(GenerateRequest)
    db = get_db()
    target = get_or_404(db, 'classes', 'class_id', data.class_id, 'Class')

    subjects = db.execute('SELECT * FROM subjects ORDER BY code').fetchall()
    if not subjects:
        raise BadRequest('No subjects found. Add subjects first.')
    teachers = db.execute('SELECT * FROM teachers ORDER BY name').fetchall()
    if not teachers:
        raise BadRequest('No teachers found. Add teachers first.')
    rooms = db.execute('SELECT * FROM rooms WHERE is_available = 1 ORDER BY name').fetchall()
    if not rooms:
        raise BadRequest('No rooms available. Add rooms first.')
    slots = db.execute(
        f'SELECT * FROM time_slots ORDER BY {DAY_ORDER_SQL.format(col="day")}, period'
    ).fetchall()
    if not slots:
        raise BadRequest('No time slots defined. Add time slots first.')

    teachable = teacher_subjects(db, [t['teacher_id'] for t in teachers])
    try:
        suggestion = gemini.generate_timetable_suggestion(
            subjects=[{'code': s['code'], 'name': s['name'], 'credits': s['credits'], 'type': s['subject_type']}
                      for s in subjects],
            teachers=[{'id': t['teacher_id'], 'name': t['name'],
                       'subjects': [s['code'] for s in teachable[t['teacher_id']]]}
                      for t in teachers],
            rooms=[{'id': r['room_id'], 'name': r['name'], 'type': r['room_type'], 'capacity': r['capacity']}
                   for r in rooms],
            classes=[{'id': target['class_id'], 'name': target['name'], 'strength': target['strength']}],
            time_slots=[{'day': s['day'], 'period': s['period'], 'start_time': s['start_time'],
                         'end_time': s['end_time']} for s in slots],
            constraints=data.constraints.model_dump(),
        )
    except gemini.AIServiceError as e:
        raise ai_failure('generate timetable suggestions', e)

    logger.info(f"Generated {len(suggestion)} suggested entries for class {target['name']}")
    return jsonify({
        'timetable': suggestion,
        'message': f"Generated {len(suggestion)} timetable entries for {target['name']}",
    })


@ai_bp.route('/optimize', methods=['POST'])
@role_required('ADMIN', message='Only administrators can use optimization features')
def optimize():
    data = parse_body(OptimizeRequest)
    filters = [('e.class_id = ?', data.class_id)]
    slots = [entry_to_slot(r) for r in fetch_entry_rows(get_db(), filters)]

    if not slots:
        return jsonify({'suggestions': [{
            'type': 'warning',
            'message': 'No timetable entries found. Create some entries first to get optimization suggestions.',
        }]})

    try:
        suggestions = gemini.generate_optimization_suggestions(slots, data.constraints.model_dump())
    except gemini.AIServiceError as e:
        raise ai_failure('generate optimization suggestions', e)
    return jsonify({'suggestions': suggestions})
