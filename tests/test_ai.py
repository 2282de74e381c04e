"""
tests/test_ai.py

AI routes with the Gemini call stubbed out, plus the client's response parsing.
"""
import json

import pytest
import requests

from timemaster import gemini


@pytest.fixture
def prompts(monkeypatch):
    """Replaces the HTTP call; records every prompt and replies with ``prompts.reply``."""
    class Recorder(list):
        reply = '[]'

    recorder = Recorder()

    def fake_generate_content(prompt, max_retries=3):
        recorder.append(prompt)
        return recorder.reply

    monkeypatch.setattr(gemini, 'generate_content', fake_generate_content)
    return recorder


def test_chat_without_context(student_client, prompts):
    prompts.reply = 'Try moving the lab to Friday.'
    resp = student_client.post('/api/ai/chat', json={'message': 'Any free labs?'})
    assert resp.get_json() == {'response': 'Try moving the lab to Friday.'}
    assert 'USER QUERY: Any free labs?' in prompts[0]
    assert 'CONTEXT' not in prompts[0]


def test_chat_with_context_includes_names(admin_client, factory, prompts):
    entry = factory.entry()
    resp = admin_client.post('/api/ai/chat', json={'message': 'Summarize', 'include_context': True})
    assert resp.status_code == 200
    assert entry['subject']['name'] in prompts[0]
    assert f"ROOMS: {entry['room']['name']}" in prompts[0]


def test_chat_requires_message(student_client, prompts):
    resp = student_client.post('/api/ai/chat', json={'message': ''})
    assert resp.status_code == 400
    assert prompts == []


def test_generate_returns_parsed_suggestion(admin_client, factory, prompts):
    cls = factory.class_(name='BTech CE 2024')
    teacher = factory.teacher()
    subject = factory.subject()
    admin_client.patch(f"/api/teachers/{teacher['teacher_id']}", json={'subject_ids': [subject['subject_id']]})
    factory.room()
    factory.timeslot()
    suggestion = [{'day': 'MONDAY', 'period': 1, 'subject_code': subject['code']}]
    prompts.reply = 'Here you go:\n```json\n' + json.dumps(suggestion) + '\n```'

    resp = admin_client.post('/api/ai/generate', json={
        'class_id': cls['class_id'], 'constraints': {'max_classes_per_day': 4},
    })
    assert resp.status_code == 200
    assert resp.get_json() == {
        'timetable': suggestion,
        'message': 'Generated 1 timetable entries for BTech CE 2024',
    }
    assert 'Maximum classes per day per class: 4' in prompts[0]
    assert subject['code'] in prompts[0]
    # Suggestions are not saved.
    assert admin_client.get('/api/timetable').get_json() == []


def test_generate_checks_its_inputs(admin_client, factory, prompts):
    resp = admin_client.post('/api/ai/generate', json={'class_id': 9999})
    assert resp.status_code == 404

    cls = factory.class_()
    resp = admin_client.post('/api/ai/generate', json={'class_id': cls['class_id']})
    assert resp.get_json()['message'] == 'No subjects found. Add subjects first.'

    factory.subject()
    factory.teacher()
    factory.room(is_available=False)
    resp = admin_client.post('/api/ai/generate', json={'class_id': cls['class_id']})
    assert resp.get_json()['message'] == 'No rooms available. Add rooms first.'

    factory.room()
    resp = admin_client.post('/api/ai/generate', json={'class_id': cls['class_id']})
    assert resp.get_json()['message'] == 'No time slots defined. Add time slots first.'
    assert prompts == []


def test_generate_is_admin_only(teacher_client):
    resp = teacher_client.post('/api/ai/generate', json={'class_id': 1})
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'Only administrators can generate timetables'


def test_optimize_without_entries_skips_the_model(admin_client, prompts):
    resp = admin_client.post('/api/ai/optimize', json={})
    suggestions = resp.get_json()['suggestions']
    assert len(suggestions) == 1
    assert suggestions[0]['type'] == 'warning'
    assert prompts == []


def test_optimize_with_entries(admin_client, factory, prompts):
    entry = factory.entry()
    prompts.reply = '[{"type": "improvement", "message": "Spread labs out"}]'
    resp = admin_client.post('/api/ai/optimize', json={'class_id': entry['class_id']})
    assert resp.get_json() == {'suggestions': [{'type': 'improvement', 'message': 'Spread labs out'}]}
    assert entry['teacher']['name'] in prompts[0]


def test_service_errors_become_500(admin_client, factory, monkeypatch):
    def broken(prompt, max_retries=3):
        raise gemini.AIServiceError('quota exceeded')

    monkeypatch.setattr(gemini, 'generate_content', broken)
    factory.entry()
    resp = admin_client.post('/api/ai/optimize', json={})
    assert resp.status_code == 500
    assert resp.get_json() == {'status': 'error', 'message': 'Failed to generate optimization suggestions'}


def test_extract_json_array():
    assert gemini.extract_json_array('no array here') == []
    assert gemini.extract_json_array('noise [1, 2] trailing') == [1, 2]
    with pytest.raises(gemini.AIServiceError):
        gemini.extract_json_array('[not json]')


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self.payload


def test_generate_content_posts_to_the_configured_model(app, monkeypatch):
    calls = []

    def fake_post(url, params=None, json=None, timeout=None):
        calls.append((url, params, json))
        return FakeResponse(200, {'candidates': [{'content': {'parts': [{'text': 'hello'}]}}]})

    monkeypatch.setattr(requests, 'post', fake_post)
    with app.app_context():
        assert gemini.generate_content('ping') == 'hello'

    url, params, payload = calls[0]
    assert url.endswith(f"/models/{app.config['GEMINI_MODEL']}:generateContent")
    assert params == {'key': 'test-key'}
    assert payload == {'contents': [{'parts': [{'text': 'ping'}]}]}


def test_generate_content_errors(app, monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda *args, **kwargs: FakeResponse(403, {'error': 'denied'}))
    with app.app_context():
        with pytest.raises(gemini.AIServiceError):
            gemini.generate_content('ping')

        monkeypatch.setattr(requests, 'post', lambda *args, **kwargs: FakeResponse(200, {'candidates': []}))
        with pytest.raises(gemini.AIServiceError):
            gemini.generate_content('ping')

        app.config['GEMINI_API_KEY'] = ''
        with pytest.raises(gemini.AIServiceError):
            gemini.generate_content('ping')
