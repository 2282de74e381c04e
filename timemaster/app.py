import logging

import click
from flask import Flask

from .ai import ai_bp
from .auth import admin_bp, auth_bp
from .classes import classes_bp
from .config import load_config
from .dashboard import dashboard_bp
from .db import close_connection, init_db
from .errors import register_error_handlers
from .exports import exports_bp
from .rooms import rooms_bp
from .seed import seed_db
from .students import students_bp
from .subjects import subjects_bp
from .teachers import teachers_bp
from .timeslots import timeslots_bp
from .timetable import timetable_bp

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.update(load_config())
app.json.sort_keys = False

register_error_handlers(app)
app.teardown_appcontext(close_connection)

# --- REGISTER BLUEPRINTS ---
for blueprint in (auth_bp, admin_bp, rooms_bp, subjects_bp, teachers_bp, classes_bp, students_bp,
                  timeslots_bp, timetable_bp, dashboard_bp, ai_bp, exports_bp):
    app.register_blueprint(blueprint)


# --- CLI ---
@app.cli.command('init-db')
def init_db_command():
    """Create the tables and the default admin account."""
    init_db()
    click.echo('Initialized the database.')


@app.cli.command('seed-db')
def seed_db_command():
    """Load sample rooms, subjects, teachers, classes, time slots and students."""
    init_db()
    seed_db()
    click.echo('Seeded the database.')


if __name__ == '__main__':
    with app.app_context():
        init_db()
    app.run(debug=True)
