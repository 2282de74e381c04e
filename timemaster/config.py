import os
from datetime import timedelta

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))
load_dotenv()


def load_config():
    """Builds the Flask config mapping from the environment."""
    return {
        'DATABASE': os.environ.get('TIMEMASTER_DATABASE', os.path.join(BASE_DIR, 'timetable.db')),
        'SECRET_KEY': os.environ.get('FLASK_SECRET_KEY', 'change-this-secret'),
        'PERMANENT_SESSION_LIFETIME': timedelta(days=int(os.environ.get('SESSION_DAYS', '30'))),
        'GEMINI_API_KEY': os.environ.get('GEMINI_API_KEY', ''),
        'GEMINI_MODEL': os.environ.get('GEMINI_MODEL', 'gemini-1.5-flash'),
        'GEMINI_TIMEOUT': float(os.environ.get('GEMINI_TIMEOUT', '60')),
        'ADMIN_EMAIL': os.environ.get('TIMEMASTER_ADMIN_EMAIL', 'admin@timemaster.edu'),
        'ADMIN_PASSWORD': os.environ.get('TIMEMASTER_ADMIN_PASSWORD', 'admin123'),
    }
