"""
tests/test_timetable.py

API tests for timetable entries: conflicts, availability and updates.
"""
import pytest

from timemaster.scheduling import Conflict


@pytest.fixture
def base(factory):
    """One scheduled entry plus spare resources to build clashing candidates from."""
    slot = factory.timeslot()
    entry = factory.entry(time_slot_id=slot['time_slot_id'])
    return {
        'slot': slot,
        'entry': entry,
        'class_id': factory.class_()['class_id'],
        'subject_id': factory.subject()['subject_id'],
        'teacher_id': factory.teacher()['teacher_id'],
        'room_id': factory.room()['room_id'],
    }


def candidate(base, **overrides):
    data = {
        'class_id': base['class_id'],
        'subject_id': base['subject_id'],
        'teacher_id': base['teacher_id'],
        'room_id': base['room_id'],
        'time_slot_id': base['slot']['time_slot_id'],
    }
    data.update(overrides)
    return data


def test_create_entry_returns_nested_rows(factory):
    entry = factory.entry()
    assert entry['entry_id'] > 0
    assert entry['class']['class_id'] == entry['class_id']
    assert entry['subject']['code'].startswith('SUB')
    assert entry['teacher']['name'].startswith('Teacher')
    assert entry['room']['name'].startswith('R')
    assert entry['time_slot']['day'] == 'MONDAY'


def test_free_candidate_is_accepted(admin_client, base):
    resp = admin_client.post('/api/timetable', json=candidate(base))
    assert resp.status_code == 201


@pytest.mark.parametrize('column, message', [
    ('class_id', 'Class already has a scheduled entry at this time slot'),
    ('teacher_id', 'Teacher already has a scheduled entry at this time slot'),
    ('room_id', 'Room already has a scheduled entry at this time slot'),
])
def test_shared_dimension_in_same_slot_is_a_conflict(admin_client, base, column, message):
    data = candidate(base, **{column: base['entry'][column]})
    resp = admin_client.post('/api/timetable', json=data)
    assert resp.status_code == 409
    assert resp.get_json() == {'status': 'error', 'message': message}


def test_same_resources_in_another_slot_are_fine(admin_client, factory, base):
    other = factory.timeslot()
    entry = base['entry']
    data = {k: entry[k] for k in ('class_id', 'subject_id', 'teacher_id', 'room_id')}
    data['time_slot_id'] = other['time_slot_id']
    assert admin_client.post('/api/timetable', json=data).status_code == 201


def test_teacher_conflict_reported_before_room(admin_client, base):
    data = candidate(base, teacher_id=base['entry']['teacher_id'], room_id=base['entry']['room_id'])
    resp = admin_client.post('/api/timetable', json=data)
    assert resp.status_code == 409
    assert resp.get_json()['message'].startswith('Teacher')


def test_missing_reference_is_a_bad_request(admin_client, base):
    resp = admin_client.post('/api/timetable', json=candidate(base, room_id=9999))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Room not found'


def test_invalid_body_is_rejected(admin_client):
    resp = admin_client.post('/api/timetable', json={'subject_id': 1})
    assert resp.status_code == 400
    assert resp.get_json()['message'].startswith('class_id')


def test_unavailable_teacher_is_rejected(admin_client, base):
    admin_client.patch(f"/api/teachers/{base['teacher_id']}", json={'is_available': False})
    resp = admin_client.post('/api/timetable', json=candidate(base))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Teacher is not available'


def test_unavailable_room_is_rejected(admin_client, base):
    admin_client.patch(f"/api/rooms/{base['room_id']}", json={'is_available': False})
    resp = admin_client.post('/api/timetable', json=candidate(base))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Room is not available'


def test_room_availability_checked_before_teacher_on_create(admin_client, base):
    admin_client.patch(f"/api/teachers/{base['teacher_id']}", json={'is_available': False})
    admin_client.patch(f"/api/rooms/{base['room_id']}", json={'is_available': False})
    resp = admin_client.post('/api/timetable', json=candidate(base))
    assert resp.get_json()['message'] == 'Room is not available'


def test_teacher_availability_checked_before_room_on_update(admin_client, factory, base):
    teacher = factory.teacher(is_available=False)
    room = factory.room(is_available=False)
    resp = admin_client.patch(
        f"/api/timetable/{base['entry']['entry_id']}",
        json={'teacher_id': teacher['teacher_id'], 'room_id': room['room_id']},
    )
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Teacher is not available'


def test_clash_is_reported_before_unavailable_teacher_on_create(admin_client, base):
    busy_teacher = base['entry']['teacher_id']
    admin_client.patch(f"/api/teachers/{busy_teacher}", json={'is_available': False})
    resp = admin_client.post('/api/timetable', json=candidate(base, teacher_id=busy_teacher))
    assert resp.status_code == 409
    assert resp.get_json()['message'] == 'Teacher already has a scheduled entry at this time slot'


def test_unavailability_does_not_touch_existing_entries(admin_client, factory, base):
    entry = base['entry']
    admin_client.patch(f"/api/teachers/{entry['teacher_id']}", json={'is_available': False})

    listed = admin_client.get('/api/timetable').get_json()
    assert [e['entry_id'] for e in listed] == [entry['entry_id']]

    # Editing another field of the entry still works while its teacher is unavailable.
    resp = admin_client.patch(f"/api/timetable/{entry['entry_id']}", json={'room_id': base['room_id']})
    assert resp.status_code == 200
    assert resp.get_json()['room_id'] == base['room_id']

    # Moving the entry onto an unavailable teacher does not.
    new_teacher = factory.teacher(is_available=False)
    resp = admin_client.patch(
        f"/api/timetable/{entry['entry_id']}", json={'teacher_id': new_teacher['teacher_id']}
    )
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Teacher is not available'


def test_update_does_not_conflict_with_itself(admin_client, base):
    entry = base['entry']
    resp = admin_client.patch(f"/api/timetable/{entry['entry_id']}", json={
        'class_id': entry['class_id'], 'time_slot_id': entry['time_slot_id'],
    })
    assert resp.status_code == 200


def test_update_into_an_occupied_slot_is_a_conflict(admin_client, factory, base):
    other_slot = factory.timeslot()
    moved = factory.entry(teacher_id=base['entry']['teacher_id'], time_slot_id=other_slot['time_slot_id'])

    resp = admin_client.patch(
        f"/api/timetable/{moved['entry_id']}", json={'time_slot_id': base['slot']['time_slot_id']}
    )
    assert resp.status_code == 409
    assert resp.get_json()['message'] == 'Teacher already has a scheduled entry at this time slot'


def test_update_rejects_null_fields(admin_client, base):
    resp = admin_client.patch(f"/api/timetable/{base['entry']['entry_id']}", json={'room_id': None})
    assert resp.status_code == 400
    assert 'room_id cannot be null' in resp.get_json()['message']


def test_unique_index_backs_up_the_precheck(admin_client, base, monkeypatch):
    monkeypatch.setattr('timemaster.timetable.find_entry_conflict', lambda *args, **kwargs: Conflict.OK)
    data = candidate(base, room_id=base['entry']['room_id'])
    resp = admin_client.post('/api/timetable', json=data)
    assert resp.status_code == 409
    assert resp.get_json()['message'] == 'Room already has a scheduled entry at this time slot'


def test_unique_index_backs_up_the_precheck_on_update(admin_client, factory, base, monkeypatch):
    other = factory.entry()
    monkeypatch.setattr('timemaster.timetable.find_entry_conflict', lambda *args, **kwargs: Conflict.OK)
    resp = admin_client.patch(
        f"/api/timetable/{other['entry_id']}",
        json={'time_slot_id': base['slot']['time_slot_id'], 'class_id': base['entry']['class_id']},
    )
    assert resp.status_code == 409
    assert resp.get_json()['message'] == 'Class already has a scheduled entry at this time slot'
    # The rejected write was rolled back.
    detail = admin_client.get(f"/api/timetable/{other['entry_id']}").get_json()
    assert detail['time_slot_id'] == other['time_slot_id']



def test_get_and_delete_entry(admin_client, base):
    entry_id = base['entry']['entry_id']
    assert admin_client.get(f'/api/timetable/{entry_id}').get_json()['entry_id'] == entry_id

    resp = admin_client.delete(f'/api/timetable/{entry_id}')
    assert resp.get_json() == {'status': 'success', 'message': 'Timetable entry deleted successfully.'}
    assert admin_client.get(f'/api/timetable/{entry_id}').status_code == 404
    assert admin_client.delete(f'/api/timetable/{entry_id}').status_code == 404


def test_list_is_in_week_order_and_filterable(admin_client, factory):
    cls = factory.class_()
    friday = factory.timeslot(day='FRIDAY', period=1)
    tuesday = factory.timeslot(day='TUESDAY', period=2)
    tuesday_early = factory.timeslot(day='TUESDAY', period=1)
    for slot in (friday, tuesday, tuesday_early):
        factory.entry(class_id=cls['class_id'], time_slot_id=slot['time_slot_id'])
    other = factory.entry(time_slot_id=factory.timeslot(day='SATURDAY', period=1)['time_slot_id'])

    listed = admin_client.get(f"/api/timetable?class_id={cls['class_id']}").get_json()
    assert [(e['time_slot']['day'], e['time_slot']['period']) for e in listed] == [
        ('TUESDAY', 1), ('TUESDAY', 2), ('FRIDAY', 1),
    ]

    by_day = admin_client.get('/api/timetable?day=SATURDAY').get_json()
    assert [e['entry_id'] for e in by_day] == [other['entry_id']]

    by_teacher = admin_client.get(f"/api/timetable?teacher_id={other['teacher_id']}").get_json()
    assert [e['entry_id'] for e in by_teacher] == [other['entry_id']]


def test_reads_need_login_and_writes_need_admin(client, student_client, base):
    assert client.get('/api/timetable').status_code == 401
    assert student_client.get('/api/timetable').status_code == 200
    resp = student_client.post('/api/timetable', json=candidate(base))
    assert resp.status_code == 403
    assert resp.get_json()['status'] == 'error'
