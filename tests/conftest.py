import itertools

import pytest
from werkzeug.security import generate_password_hash

from timemaster.app import app as flask_app
from timemaster.db import DAYS, get_db, init_db

ADMIN_EMAIL = 'admin@timemaster.edu'
ADMIN_PASSWORD = 'admin123'
PASSWORD = 'secret123'


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(
        TESTING=True,
        DATABASE=str(tmp_path / 'test.db'),
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        GEMINI_API_KEY='test-key',
    )
    with flask_app.app_context():
        init_db()
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password):
    resp = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def make_user(app):
    """Inserts a user directly and returns its id."""
    def _make_user(email, role='STUDENT', name=None, password=PASSWORD):
        with app.app_context():
            db = get_db()
            cur = db.execute(
                'INSERT INTO users (email, name, password_hash, role) VALUES (?, ?, ?, ?)',
                (email, name or email.split('@')[0], generate_password_hash(password), role),
            )
            db.commit()
            return cur.lastrowid
    return _make_user


@pytest.fixture
def admin_client(app):
    return login(app.test_client(), ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def teacher_user(make_user):
    return make_user('prof@college.edu', role='TEACHER', name='Prof. Rao')


@pytest.fixture
def teacher_client(app, teacher_user):
    return login(app.test_client(), 'prof@college.edu', PASSWORD)


@pytest.fixture
def student_user(make_user):
    return make_user('pupil@college.edu', role='STUDENT', name='Pupil')


@pytest.fixture
def student_client(app, student_user):
    return login(app.test_client(), 'pupil@college.edu', PASSWORD)


class Factory:
    """Creates resources through the API as an admin, filling in unique defaults."""

    def __init__(self, client):
        self.client = client
        self.counter = itertools.count(1)
        self.slots = itertools.count(0)

    def post(self, path, data):
        resp = self.client.post(path, json=data)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    def room(self, **kw):
        n = next(self.counter)
        return self.post('/api/rooms', {'name': f'R{n}', 'capacity': 60, **kw})

    def subject(self, **kw):
        n = next(self.counter)
        return self.post('/api/subjects', {'code': f'SUB{n}', 'name': f'Subject {n}', **kw})

    def teacher(self, **kw):
        n = next(self.counter)
        return self.post('/api/teachers', {
            'employee_id': f'EMP{n}', 'name': f'Teacher {n}', 'email': f'teacher{n}@college.edu', **kw,
        })

    def class_(self, **kw):
        n = next(self.counter)
        return self.post('/api/classes', {'name': f'Class {n}', 'program': 'BTech', 'year': 1, 'semester': 1, **kw})

    def student(self, class_id, **kw):
        n = next(self.counter)
        return self.post('/api/students', {
            'roll_number': f'ROLL{n}', 'name': f'Student {n}', 'email': f'student{n}@college.edu',
            'class_id': class_id, **kw,
        })

    def timeslot(self, day=None, period=None, **kw):
        if day is None and period is None:
            i = next(self.slots)
            day, period = DAYS[i // 12], i % 12 + 1
        day, period = day or 'MONDAY', period or 1
        data = {
            'day': day, 'period': period,
            'start_time': f'{8 + period:02d}:00', 'end_time': f'{9 + period:02d}:00', **kw,
        }
        return self.post('/api/timeslots', data)

    def entry(self, **kw):
        data = dict(kw)
        if 'class_id' not in data:
            data['class_id'] = self.class_()['class_id']
        if 'subject_id' not in data:
            data['subject_id'] = self.subject()['subject_id']
        if 'teacher_id' not in data:
            data['teacher_id'] = self.teacher()['teacher_id']
        if 'room_id' not in data:
            data['room_id'] = self.room()['room_id']
        if 'time_slot_id' not in data:
            data['time_slot_id'] = self.timeslot()['time_slot_id']
        return self.post('/api/timetable', data)


@pytest.fixture
def factory(admin_client):
    return Factory(admin_client)
