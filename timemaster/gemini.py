"""
Thin client for the Gemini ``generateContent`` REST endpoint and the three
prompts the AI routes use. Nothing here touches the database; callers pass in
plain dicts and get plain dicts (or text) back.
"""

import json
import logging
import re
import time

import requests
from flask import current_app

logger = logging.getLogger(__name__)

API_URL = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'
JSON_ARRAY_RE = re.compile(r'\[[\s\S]*\]')
CHAT_CONTEXT_LIMIT = 20
RETRY_STATUSES = (429, 500, 502, 503, 504)


class AIServiceError(Exception):
    pass


def generate_content(prompt, max_retries=3):
    """Sends one prompt and returns the text of the first candidate."""
    api_key = current_app.config.get('GEMINI_API_KEY')
    if not api_key:
        raise AIServiceError('GEMINI_API_KEY is not configured')

    url = API_URL.format(model=current_app.config['GEMINI_MODEL'])
    payload = {'contents': [{'parts': [{'text': prompt}]}]}

    for attempt in range(max_retries):
        try:
            response = requests.post(
                url,
                params={'key': api_key},
                json=payload,
                timeout=current_app.config['GEMINI_TIMEOUT'],
            )
        except requests.RequestException as e:
            raise AIServiceError(f'Gemini request failed: {e}') from e

        if response.status_code in RETRY_STATUSES and attempt < max_retries - 1:
            wait_time = 2 ** attempt
            logger.warning(f"Gemini returned {response.status_code}, retrying in {wait_time}s")
            time.sleep(wait_time)
            continue
        if response.status_code != 200:
            raise AIServiceError(f'Gemini returned {response.status_code}: {response.text[:200]}')

        try:
            return response.json()['candidates'][0]['content']['parts'][0]['text']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIServiceError('Unexpected response from Gemini') from e


def extract_json_array(text):
    """Pulls the first JSON array out of a model reply. No array means an empty list."""
    match = JSON_ARRAY_RE.search(text or '')
    if not match:
        return []
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIServiceError('Gemini returned malformed JSON') from e
    if not isinstance(data, list):
        raise AIServiceError('Gemini returned malformed JSON')
    return data


def format_constraints(constraints, per_class=False):
    scope = ' per class' if per_class else ''
    return (
        f"- Maximum classes per day{scope}: {constraints['max_classes_per_day']}\n"
        f"- Minimum break between classes: {constraints['min_break_between_classes']} minutes\n"
        f"- Preferred start time: {constraints['preferred_start_time']}\n"
        f"- Preferred end time: {constraints['preferred_end_time']}\n"
        f"- Avoid back-to-back labs: {constraints['avoid_back_to_back_labs']}"
    )


def generate_optimization_suggestions(timetable, constraints):
    prompt = f"""You are a timetable optimization expert for an educational institution. Analyze the following timetable and provide optimization suggestions.

CURRENT TIMETABLE:
{json.dumps(timetable, indent=2)}

CONSTRAINTS:
{format_constraints(constraints)}

Respond with a JSON array of suggestions, each shaped like:
{{"type": "conflict" | "improvement" | "warning", "message": "...", "affected_slots": ["..."], "suggested_action": "..."}}

Focus on scheduling conflicts, teacher workload, breaks between classes, load balance across the week and back-to-back labs.

Return ONLY the JSON array, no additional text."""
    return extract_json_array(generate_content(prompt))


def generate_timetable_suggestion(subjects, teachers, rooms, classes, time_slots, constraints):
    prompt = f"""You are a timetable scheduling expert. Generate an optimal timetable based on the following data.

SUBJECTS:
{json.dumps(subjects, indent=2)}

TEACHERS (with their teachable subjects):
{json.dumps(teachers, indent=2)}

ROOMS:
{json.dumps(rooms, indent=2)}

CLASSES:
{json.dumps(classes, indent=2)}

AVAILABLE TIME SLOTS:
{json.dumps(time_slots, indent=2)}

CONSTRAINTS:
{format_constraints(constraints, per_class=True)}

Respond with a JSON array of entries, each shaped like:
{{"day": "MONDAY", "period": 1, "start_time": "09:00", "end_time": "10:00", "subject_name": "...", "subject_code": "...", "teacher_name": "...", "room_name": "...", "class_name": "..."}}

RULES:
1. No teacher can be in two places at the same time
2. No room can host two classes at the same time
3. No class can have two subjects at the same time
4. Match room type to subject type (labs for practicals)
5. Ensure room capacity >= class strength
6. Distribute classes evenly across the week

Return ONLY the JSON array, no additional text."""
    return extract_json_array(generate_content(prompt))


def chat_with_ai(message, context=None):
    context_lines = []
    if context:
        if context.get('timetable'):
            context_lines.append('CURRENT TIMETABLE:\n' + json.dumps(context['timetable'][:CHAT_CONTEXT_LIMIT], indent=2))
        for key in ('subjects', 'teachers', 'rooms'):
            if context.get(key):
                context_lines.append(f"{key.upper()}: {', '.join(context[key])}")

    context_block = 'CONTEXT:\n' + '\n'.join(context_lines) + '\n\n' if context_lines else ''
    prompt = (
        'You are TimeMaster AI, an assistant for timetable management at a university. '
        'You help administrators, teachers and students with scheduling questions.\n\n'
        f'{context_block}'
        f'USER QUERY: {message}\n\n'
        'Provide a helpful, concise response. For questions about conflicts or optimization, '
        'give specific actionable suggestions.'
    )
    return generate_content(prompt)
