from flask import Blueprint, jsonify, request, session
from auth import (
    admin_required, authenticate_user, create_user, get_current_user, get_user_by_id,
    list_users, login_required, login_user_session, logout_user_session, set_user_role,
)
from db import is_postgres
from logging_config import logger

farm_bp = Blueprint('farm_bp', __name__)


def _credentials():
    data = request.get_json(silent=True) if request.is_json else request.form.to_dict()
    return data if isinstance(data, dict) else {}


@farm_bp.route('/health')
def health():
    from cache import get_page_cache
    return jsonify({
        'status': 'ok',
        'database': 'postgres' if is_postgres() else 'sqlite',
        'page_cache': get_page_cache().stats(),
    })


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@farm_bp.route('/login', methods=['POST'])
def login():
    data = _credentials()
    try:
        user = authenticate_user(data.get('email'), data.get('password'))
    except Exception as e:
        logger.error(f"Login failed with an error: {e}")
        return jsonify({'error': str(e)}), 500
    if not user:
        return jsonify({'error': 'Invalid email or password'}), 401
    login_user_session(user)
    logger.info(f"User {user['id']} logged in")
    return jsonify({'user': user})


@farm_bp.route('/logout', methods=['POST'])
def logout():
    user_id = session.get('user_id')
    logout_user_session()
    if user_id:
        logger.info(f"User {user_id} logged out")
    return jsonify({'message': 'Logged out'})


@farm_bp.route('/register', methods=['POST'])
def register():
    """Create an account and sign it in. The first account becomes an admin."""
    data = _credentials()
    try:
        role = 'member' if list_users() else 'admin'
        user_id = create_user(data.get('email'), data.get('password'), data.get('name'), role=role)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Registration failed: {e}")
        return jsonify({'error': str(e)}), 500
    user = get_user_by_id(user_id)
    login_user_session(user)
    return jsonify({'user': user}), 201


@farm_bp.route('/api/me')
@login_required
def me():
    user = get_user_by_id(session['user_id']) or get_current_user()
    return jsonify({'user': user})


# ---------------------------------------------------------------------------
# Users (admin)
# ---------------------------------------------------------------------------

@farm_bp.route('/api/users')
@admin_required
def users():
    try:
        return jsonify(list_users())
    except Exception as e:
        logger.error(f"Error listing users: {e}")
        return jsonify({'error': str(e)}), 500


@farm_bp.route('/api/users/<int:user_id>/role', methods=['PUT'])
@admin_required
def update_user_role(user_id):
    data = _credentials()
    try:
        if not set_user_role(user_id, data.get('role')):
            return jsonify({'error': 'User not found'}), 404
        return jsonify({'message': 'Role updated', 'user': get_user_by_id(user_id)})
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error updating role for user {user_id}: {e}")
        return jsonify({'error': str(e)}), 500


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

@farm_bp.route('/api/dashboard')
@login_required
def dashboard():
    include_weather = request.args.get('weather', 'true').lower() != 'false'
    try:
        from reporting import get_dashboard_overview
        return jsonify(get_dashboard_overview(include_weather=include_weather))
    except Exception as e:
        logger.error(f"Error building dashboard overview: {e}")
        return jsonify({'error': f"Database Error: {e}"}), 500
