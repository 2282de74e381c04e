import logging
import sqlite3
from functools import wraps

from flask import Blueprint, g, jsonify, session
from werkzeug.security import check_password_hash, generate_password_hash

from .db import get_db
from .errors import BadRequest, Forbidden, NotFound, Unauthorized
from .validation import LoginRequest, RegisterRequest, RoleUpdate, parse_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth_bp', __name__, url_prefix='/api/auth')
admin_bp = Blueprint('admin_bp', __name__, url_prefix='/api/admin')

PUBLIC_USER_COLUMNS = 'user_id, email, name, role, created_at'


def get_current_user():
    """Loads the signed-in user once per request. Returns None when signed out."""
    if 'current_user' not in g:
        user_id = session.get('user_id')
        user = None
        if user_id is not None:
            row = get_db().execute(
                f'SELECT {PUBLIC_USER_COLUMNS} FROM users WHERE user_id = ?', (user_id,)
            ).fetchone()
            user = dict(row) if row else None
        g.current_user = user
    return g.current_user


# --- DECORATORS ---
def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_user() is None:
            raise Unauthorized('Unauthorized')
        return f(*args, **kwargs)
    return decorated_function


def role_required(*roles, message='Forbidden'):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if user is None:
                raise Unauthorized('Unauthorized')
            if user['role'] not in roles:
                raise Forbidden(message)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = role_required('ADMIN')


# --- AUTH ROUTES ---
@auth_bp.route('/register', methods=['POST'])
def register():
    data = parse_body(RegisterRequest)
    db = get_db()
    try:
        cur = db.execute(
            "INSERT INTO users (email, name, password_hash, role) VALUES (?, ?, ?, 'STUDENT')",
            (data.email, data.name, generate_password_hash(data.password)),
        )
        db.commit()
    except sqlite3.IntegrityError:
        raise BadRequest('A user with this email already exists')
    user = db.execute(f'SELECT {PUBLIC_USER_COLUMNS} FROM users WHERE user_id = ?', (cur.lastrowid,)).fetchone()
    logger.info(f"Registered user {data.email}")
    return jsonify(dict(user)), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = parse_body(LoginRequest)
    user = get_db().execute('SELECT * FROM users WHERE email = ?', (data.email,)).fetchone()

    if user is None or not check_password_hash(user['password_hash'], data.password):
        logger.warning(f"Failed login for {data.email}")
        raise Unauthorized('Invalid email or password')

    session.clear()
    session.permanent = data.remember
    session['user_id'] = user['user_id']
    g.pop('current_user', None)
    return jsonify({'status': 'success', 'user': get_current_user()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'success', 'message': 'You have been successfully logged out.'})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(get_current_user())


# --- USER MANAGEMENT ---
@admin_bp.route('/users')
@admin_required
def list_users():
    rows = get_db().execute(
        f'SELECT {PUBLIC_USER_COLUMNS} FROM users ORDER BY created_at DESC, user_id DESC'
    ).fetchall()
    return jsonify([dict(r) for r in rows])


@admin_bp.route('/users', methods=['PATCH'])
@admin_required
def update_user_role():
    data = parse_body(RoleUpdate)
    current = get_current_user()
    if data.user_id == current['user_id']:
        raise BadRequest('Cannot change your own role')

    db = get_db()
    if db.execute('SELECT 1 FROM users WHERE user_id = ?', (data.user_id,)).fetchone() is None:
        raise NotFound('User not found')
    db.execute('UPDATE users SET role = ? WHERE user_id = ?', (data.role, data.user_id))
    db.commit()
    logger.info(f"User {data.user_id} role changed to {data.role} by {current['email']}")

    user = db.execute(f'SELECT {PUBLIC_USER_COLUMNS} FROM users WHERE user_id = ?', (data.user_id,)).fetchone()
    return jsonify(dict(user))
