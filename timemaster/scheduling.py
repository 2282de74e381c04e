"""
Conflict checking and availability gating for timetable entries.

An entry conflicts with another when both sit in the same time slot and share
the class, the teacher or the room. The checks here are the fast pre-check run
before a write; the UNIQUE constraints on ``timetable_entries`` remain the
authoritative guarantee, and ``conflict_from_integrity_error`` maps a violation
of those constraints back to the same result.

Entries and candidates are any mappings with ``class_id``, ``teacher_id``,
``room_id`` and ``time_slot_id`` keys (plain dicts or ``sqlite3.Row``).
"""

from enum import Enum
from typing import Iterable, Mapping, Optional


class Conflict(Enum):
    OK = 'OK'
    CLASS_CONFLICT = 'CLASS_CONFLICT'
    TEACHER_CONFLICT = 'TEACHER_CONFLICT'
    ROOM_CONFLICT = 'ROOM_CONFLICT'


class Availability(Enum):
    OK = 'OK'
    TEACHER_UNAVAILABLE = 'TEACHER_UNAVAILABLE'
    ROOM_UNAVAILABLE = 'ROOM_UNAVAILABLE'


# Checked in this order; the first dimension that clashes wins.
CONFLICT_DIMENSIONS = [
    ('class_id', Conflict.CLASS_CONFLICT),
    ('teacher_id', Conflict.TEACHER_CONFLICT),
    ('room_id', Conflict.ROOM_CONFLICT),
]

CONFLICT_MESSAGES = {
    Conflict.CLASS_CONFLICT: 'Class already has a scheduled entry at this time slot',
    Conflict.TEACHER_CONFLICT: 'Teacher already has a scheduled entry at this time slot',
    Conflict.ROOM_CONFLICT: 'Room already has a scheduled entry at this time slot',
}

AVAILABILITY_MESSAGES = {
    Availability.TEACHER_UNAVAILABLE: 'Teacher is not available',
    Availability.ROOM_UNAVAILABLE: 'Room is not available',
}


def find_conflict(candidate: Mapping, entries: Iterable[Mapping], exclude_id: Optional[int] = None) -> Conflict:
    """Checks a candidate assignment against an in-memory set of entries."""
    clashes = set()
    for entry in entries:
        if exclude_id is not None and entry['entry_id'] == exclude_id:
            continue
        if entry['time_slot_id'] != candidate['time_slot_id']:
            continue
        for column, conflict in CONFLICT_DIMENSIONS:
            if entry[column] == candidate[column]:
                clashes.add(conflict)

    for _, conflict in CONFLICT_DIMENSIONS:
        if conflict in clashes:
            return conflict
    return Conflict.OK


def find_entry_conflict(db, candidate: Mapping, exclude_id: Optional[int] = None) -> Conflict:
    """Same predicate as ``find_conflict``, evaluated against the stored entries.

    Each dimension is a lookup on one of the (x, time_slot_id) unique indexes.
    """
    for column, conflict in CONFLICT_DIMENSIONS:
        row = db.execute(
            f'SELECT entry_id FROM timetable_entries '
            f'WHERE {column} = ? AND time_slot_id = ? AND entry_id IS NOT ? LIMIT 1',
            (candidate[column], candidate['time_slot_id'], exclude_id),
        ).fetchone()
        if row is not None:
            return conflict
    return Conflict.OK


def conflict_from_integrity_error(exc) -> Optional[Conflict]:
    """Maps a SQLite unique violation on timetable_entries to its dimension.

    Returns None for any other integrity error.
    """
    message = str(exc)
    if 'UNIQUE constraint failed' not in message:
        return None
    for column, conflict in CONFLICT_DIMENSIONS:
        if f'timetable_entries.{column}' in message:
            return conflict
    return None


def check_availability(
    teacher: Optional[Mapping] = None, room: Optional[Mapping] = None, room_first: bool = False
) -> Availability:
    """Gates an assignment on the teacher and room availability flags.

    Pass None for a resource that should not be checked. The teacher is
    checked first unless ``room_first`` is set.
    """
    gates = [(teacher, Availability.TEACHER_UNAVAILABLE), (room, Availability.ROOM_UNAVAILABLE)]
    if room_first:
        gates.reverse()
    for resource, blocked in gates:
        if resource is not None and not resource['is_available']:
            return blocked
    return Availability.OK
