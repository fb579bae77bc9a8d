"""
Authentication module for Happy Harvests.
Handles user registration, login, roles, session management, and route
protection.
"""

import logging
from functools import wraps
from werkzeug.security import generate_password_hash, check_password_hash
from flask import session, redirect, request, jsonify
from db import get_db, get_integrity_error

logger = logging.getLogger(__name__)

VALID_ROLES = ['admin', 'member']


def init_auth_tables():
    """Create the users table. Older databases get the role column added."""
    with get_db() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                name TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'member',
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                last_login TIMESTAMP
            )
        ''')
    logger.info("Auth tables initialized")


# ---------------------------------------------------------------------------
# User CRUD
# ---------------------------------------------------------------------------

def create_user(email, password, name, role='member'):
    """Register an account; the email is stored lower-cased. Returns the new id."""
    if not email or not password or not name:
        raise ValueError("Email, password and name are required")
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of {VALID_ROLES}")
    IntegrityError = get_integrity_error()
    try:
        password_hash = generate_password_hash(password)
        with get_db() as conn:
            cursor = conn.execute(
                'INSERT INTO users (email, password_hash, name, role) VALUES (?, ?, ?, ?)',
                (email.lower().strip(), password_hash, name.strip(), role)
            )
            user_id = cursor.lastrowid
    except IntegrityError:
        raise ValueError("Email already registered")
    logger.info(f"Created user {user_id} ({role})")
    return user_id


def authenticate_user(email, password):
    """Check email and password for an active account and stamp last_login."""
    with get_db() as conn:
        row = conn.execute(
            'SELECT id, email, password_hash, name, role FROM users WHERE email = ? AND is_active = 1',
            ((email or '').lower().strip(),)
        ).fetchone()

        if row and check_password_hash(row['password_hash'], password or ''):
            conn.execute('UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = ?', (row['id'],))
            return {'id': row['id'], 'email': row['email'], 'name': row['name'], 'role': row['role']}
        return None


def get_user_by_id(user_id):
    """Account row without the password hash, or None."""
    with get_db() as conn:
        row = conn.execute(
            'SELECT id, email, name, role, created_at, last_login FROM users WHERE id = ?',
            (user_id,)
        ).fetchone()
        return dict(row) if row else None


def list_users():
    with get_db() as conn:
        rows = conn.execute(
            'SELECT id, email, name, role, is_active, created_at, last_login FROM users ORDER BY email'
        ).fetchall()
        return [dict(r) for r in rows]


def set_user_role(user_id, role):
    """Change a user's role. Returns True if a user was updated."""
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of {VALID_ROLES}")
    with get_db() as conn:
        cursor = conn.execute('UPDATE users SET role = ? WHERE id = ?', (role, user_id))
        updated = cursor.rowcount > 0
    if updated:
        logger.info(f"User {user_id} role set to {role}")
    return updated


def is_admin(user_id):
    with get_db() as conn:
        row = conn.execute('SELECT role FROM users WHERE id = ?', (user_id,)).fetchone()
    return bool(row) and row['role'] == 'admin'


# ---------------------------------------------------------------------------
# Session management
# ---------------------------------------------------------------------------

def login_user_session(user):
    """Remember the account in a permanent session (SESSION_HOURS long)."""
    session.permanent = True
    session['user_id'] = user['id']
    session['user_name'] = user['name']
    session['user_email'] = user['email']
    session['user_role'] = user.get('role', 'member')


def logout_user_session():
    """Drop the account keys from the session."""
    for key in ('user_id', 'user_name', 'user_email', 'user_role'):
        session.pop(key, None)


def get_current_user():
    """Signed-in account as stored in the session, or None."""
    user_id = session.get('user_id')
    if user_id:
        return {
            'id': user_id,
            'name': session.get('user_name'),
            'email': session.get('user_email'),
            'role': session.get('user_role'),
        }
    return None


# ---------------------------------------------------------------------------
# Route protection
# ---------------------------------------------------------------------------

def _wants_json():
    return (request.is_json
            or request.path.startswith('/api/')
            or request.headers.get('X-Requested-With') == 'XMLHttpRequest')


def login_required(f):
    """Require a signed-in account.

    JSON and /api/ callers get a 401 body, browsers are sent to /login.
    With DEMO_MODE on, anonymous requests run as user 1.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get('user_id'):
            from config import Config
            if Config.DEMO_MODE:
                session['user_id'] = 1
                return f(*args, **kwargs)
            if _wants_json():
                return jsonify({'error': 'Authentication required', 'redirect': '/login'}), 401
            return redirect('/login')
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator for admin-only routes. Checks the role column on users.
    In demo mode every request is treated as admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from config import Config
        if Config.DEMO_MODE:
            return f(*args, **kwargs)
        user_id = session.get('user_id')
        if not user_id:
            if _wants_json():
                return jsonify({'error': 'Authentication required'}), 401
            return redirect('/login')
        if not is_admin(user_id):
            if _wants_json():
                return jsonify({'error': 'Unauthorized'}), 403
            return redirect('/')
        return f(*args, **kwargs)
    return decorated_function
